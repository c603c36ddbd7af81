"""
Column layouts for the bronze and silver extents.

Each layout is an ordered list of (column, type) pairs, where type is one
of "int", "float", "str", "date" or "datetime". The same layouts drive CSV
parsing in the bronze layer and dtype restoration when an extent is read
back from SQLite.
"""
import os
from collections import namedtuple
from typing import Dict, List, Tuple

import pandas as pd


Column = Tuple[str, str]

# system: source system, file: path relative to the source directory
SourceSpec = namedtuple("SourceSpec", ["source_id", "system", "file", "columns"])


BRONZE_SCHEMAS: Dict[str, List[Column]] = {
    "crm_cust_info": [
        ("cst_id", "int"),
        ("cst_key", "str"),
        ("cst_firstname", "str"),
        ("cst_lastname", "str"),
        ("cst_marital_status", "str"),
        ("cst_gndr", "str"),
        ("cst_create_date", "date"),
    ],
    "crm_prd_info": [
        ("prd_id", "int"),
        ("prd_key", "str"),
        ("prd_nm", "str"),
        ("prd_cost", "int"),
        ("prd_line", "str"),
        ("prd_start_dt", "date"),
        ("prd_end_dt", "date"),
    ],
    "crm_sales_details": [
        ("sls_ord_num", "str"),
        ("sls_prd_key", "str"),
        ("sls_cust_id", "int"),
        ("sls_order_dt", "int"),
        ("sls_ship_dt", "int"),
        ("sls_due_dt", "int"),
        ("sls_sales", "int"),
        ("sls_quantity", "int"),
        ("sls_price", "int"),
    ],
    "erp_cust_az12": [
        ("cid", "str"),
        ("bdate", "date"),
        ("gen", "str"),
    ],
    "erp_loc_a101": [
        ("cid", "str"),
        ("cntry", "str"),
    ],
    "erp_px_cat_g1v2": [
        ("id", "str"),
        ("cat", "str"),
        ("subcat", "str"),
        ("maintenance", "str"),
    ],
}

SOURCES: Dict[str, SourceSpec] = {
    "crm_cust_info": SourceSpec("crm_cust_info", "crm", os.path.join("source_crm", "cust_info.csv"),
                                BRONZE_SCHEMAS["crm_cust_info"]),
    "crm_prd_info": SourceSpec("crm_prd_info", "crm", os.path.join("source_crm", "prd_info.csv"),
                               BRONZE_SCHEMAS["crm_prd_info"]),
    "crm_sales_details": SourceSpec("crm_sales_details", "crm", os.path.join("source_crm", "sales_details.csv"),
                                    BRONZE_SCHEMAS["crm_sales_details"]),
    "erp_cust_az12": SourceSpec("erp_cust_az12", "erp", os.path.join("source_erp", "CUST_AZ12.csv"),
                                BRONZE_SCHEMAS["erp_cust_az12"]),
    "erp_loc_a101": SourceSpec("erp_loc_a101", "erp", os.path.join("source_erp", "LOC_A101.csv"),
                               BRONZE_SCHEMAS["erp_loc_a101"]),
    "erp_px_cat_g1v2": SourceSpec("erp_px_cat_g1v2", "erp", os.path.join("source_erp", "PX_CAT_G1V2.csv"),
                                  BRONZE_SCHEMAS["erp_px_cat_g1v2"]),
}

METADATA_COLUMN: Column = ("dwh_create_date", "datetime")

SILVER_SCHEMAS: Dict[str, List[Column]] = {
    "crm_cust_info": BRONZE_SCHEMAS["crm_cust_info"] + [METADATA_COLUMN],
    "crm_prd_info": [
        ("prd_id", "int"),
        ("cat_id", "str"),
        ("prd_key", "str"),
        ("prd_nm", "str"),
        ("prd_cost", "int"),
        ("prd_line", "str"),
        ("prd_start_dt", "date"),
        ("prd_end_dt", "date"),
        METADATA_COLUMN,
    ],
    "crm_sales_details": [
        ("sls_ord_num", "str"),
        ("sls_prd_key", "str"),
        ("sls_cust_id", "int"),
        ("sls_order_dt", "date"),
        ("sls_ship_dt", "date"),
        ("sls_due_dt", "date"),
        ("sls_sales", "float"),
        ("sls_quantity", "int"),
        ("sls_price", "float"),
        METADATA_COLUMN,
    ],
    "erp_cust_az12": BRONZE_SCHEMAS["erp_cust_az12"] + [METADATA_COLUMN],
    "erp_loc_a101": BRONZE_SCHEMAS["erp_loc_a101"] + [METADATA_COLUMN],
    "erp_px_cat_g1v2": BRONZE_SCHEMAS["erp_px_cat_g1v2"] + [METADATA_COLUMN],
}

LAYER_SCHEMAS = {
    "bronze": BRONZE_SCHEMAS,
    "silver": SILVER_SCHEMAS,
}


def column_names(columns: List[Column]) -> List[str]:
    return [name for name, _ in columns]


def coerce_series(series: pd.Series, kind: str) -> pd.Series:
    """Cast a column to the pandas dtype used for the given layout type."""
    if kind == "int":
        values = pd.to_numeric(series, errors="coerce")
        if pd.api.types.is_float_dtype(values):
            values = values.round()
        return values.astype("Int64")
    if kind == "float":
        return pd.to_numeric(series, errors="coerce").astype("float64")
    if kind == "date":
        return pd.to_datetime(series, errors="coerce").astype("datetime64[ns]").dt.normalize()
    if kind == "datetime":
        return pd.to_datetime(series, errors="coerce").astype("datetime64[ns]")
    # text: keep None for nulls rather than NaN
    return pd.Series(
        [None if pd.isna(v) else v for v in series], index=series.index, dtype=object
    )


def coerce_frame(df: pd.DataFrame, columns: List[Column]) -> pd.DataFrame:
    """
    Return a copy of df holding exactly the given columns, in order, cast to
    their layout types. Missing columns are added as nulls.
    """
    result = pd.DataFrame(index=df.index)
    for name, kind in columns:
        source = df[name] if name in df.columns else pd.Series([None] * len(df), index=df.index, dtype=object)
        result[name] = coerce_series(source, kind)
    return result.reset_index(drop=True)


def empty_frame(columns: List[Column]) -> pd.DataFrame:
    return coerce_frame(pd.DataFrame(columns=column_names(columns)), columns)
