"""
Pytest configuration and fixtures for the warehouse tests.

Raw frames are built through the bronze layouts so they carry the same
dtypes a real bronze load produces.
"""
import csv
import os
from datetime import datetime
from typing import List

import pandas as pd
import pytest

from sqlite_warehouse.schemas import BRONZE_SCHEMAS, SOURCES, coerce_frame, column_names
from sqlite_warehouse.store import WarehouseStore


AS_OF = datetime(2024, 1, 1, 12, 0, 0)


def raw_frame(entity: str, rows: List[list]) -> pd.DataFrame:
    """Build a bronze-shaped frame for entity from plain row lists."""
    columns = BRONZE_SCHEMAS[entity]
    return coerce_frame(pd.DataFrame(rows, columns=column_names(columns)), columns)


def write_extract(source_dir, source_id: str, rows: List[list], header: List[str] = None) -> str:
    """Write a CSV extract for source_id under source_dir and return its path."""
    path = os.path.join(str(source_dir), SOURCES[source_id].file)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header or column_names(SOURCES[source_id].columns))
        for row in rows:
            writer.writerow(["" if v is None else v for v in row])
    return path


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def store(tmp_path) -> WarehouseStore:
    return WarehouseStore(str(tmp_path / "database" / "warehouse.db"))


@pytest.fixture
def raw_customers() -> pd.DataFrame:
    return raw_frame("crm_cust_info", [
        [11000, " AW00011000", " Jon ", "Yang ", "m", "M", "2023-01-01"],
        [11001, "AW00011001", "Eugene", "Huang", "S", "m", "2023-02-10"],
        [11002, "AW00011002", "Ruben", "Torres", "", "", "2023-03-05"],
        [11000, "AW00011000", "Jon", "Yang", "S", "", "2022-06-01"],
        [None, "AW00099999", "Ghost", "Record", "S", "F", "2023-04-01"],
    ])


@pytest.fixture
def raw_erp_customers() -> pd.DataFrame:
    return raw_frame("erp_cust_az12", [
        ["NASAW00011000", "1971-10-06", "Male"],
        ["AW00011001", "2099-01-01", " f"],
        ["NASAW00011002", "1976-05-10", "M "],
    ])


@pytest.fixture
def raw_locations() -> pd.DataFrame:
    return raw_frame("erp_loc_a101", [
        ["AW-00011000", "Australia"],
        ["AW-00011001", "DE"],
        ["AW-00011002", " USA"],
    ])


@pytest.fixture
def raw_products() -> pd.DataFrame:
    return raw_frame("crm_prd_info", [
        [210, "CO-RF-FR-R92B-58", "HL Road Frame - Black- 58", None, "R ", "2003-07-01", None],
        [211, "BI-RB-BK-R93R-62", " Road-150 Red- 62", 2171, "r", "2011-07-01", "2007-12-28"],
        [212, "BI-RB-BK-R93R-62", "Road-150 Red- 62", 2200, "R", "2012-07-01", None],
        [213, "AC-HE-HL-U509", "Sport-100 Helmet", 12, "S", "2012-07-01", None],
    ])


@pytest.fixture
def raw_categories() -> pd.DataFrame:
    return raw_frame("erp_px_cat_g1v2", [
        ["CO_RF", "Components", "Road Frames", "Yes"],
        ["BI_RB", "Bikes", "Road Bikes", "Yes"],
        ["AC_HE", "Accessories", "Helmets", " No"],
    ])


@pytest.fixture
def raw_sales() -> pd.DataFrame:
    return raw_frame("crm_sales_details", [
        ["SO43697", "BK-R93R-62", 11000, 20231026, 20231102, 20231107, 3578, 1, 3578],
        ["SO43698", "HL-U509", 11001, 0, 20231102, 20231107, None, 2, 35],
        ["SO43699", "FR-R92B-58", 11002, 2023102, 20231102, 20231107, 50, 2, -25],
        ["SO43700", "HL-U509", 11001, 20231026, 20231102, 20231107, 70, 2, None],
    ])
