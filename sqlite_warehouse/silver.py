"""
Silver layer: cleanse, standardize and deduplicate bronze extents.

Each conform_* function maps one raw extent to its conformed extent. They
are pure and never raise on dirty values; transform_bronze_to_silver runs
them all against the store and replaces the silver extents.
"""
import time
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

import pandas as pd

from . import rules
from .errors import ExtentNotFoundError
from .schemas import SILVER_SCHEMAS, coerce_frame
from .store import WarehouseStore


logger = logging.getLogger("sqlite_warehouse.silver")


MARITAL_STATUS = {"S": "Single", "M": "Married"}
CRM_GENDER = {"F": "Female", "M": "Male"}
ERP_GENDER = {"F": "Female", "FEMALE": "Female", "M": "Male", "MALE": "Male"}
PRODUCT_LINE = {"M": "Mountain", "R": "Road", "S": "Other Sales", "T": "Touring"}
COUNTRY = {
    "DE": "Germany",
    "US": "United States",
    "USA": "United States",
    "AUSTRALIA": "Australia",
    "CANADA": "Canada",
    "FRANCE": "France",
    "GERMANY": "Germany",
    "UNITED KINGDOM": "United Kingdom",
    "UNITED STATES": "United States",
}


def canonical_labels(mapping: Dict[str, str]) -> set:
    """The closed set of values a standardized column may hold."""
    return set(mapping.values()) | {rules.UNKNOWN}


def _stamp(df: pd.DataFrame, entity: str, as_of: datetime) -> pd.DataFrame:
    df = df.copy()
    df["dwh_create_date"] = rules.naive_timestamp(as_of)
    return coerce_frame(df, SILVER_SCHEMAS[entity])


def conform_customers(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    """CRM customers: trim names, decode marital status and gender, keep the latest version per id."""
    df = rules.latest_per_key(raw, "cst_id", "cst_create_date")
    df["cst_key"] = rules.trim(df["cst_key"])
    df["cst_firstname"] = rules.trim(df["cst_firstname"])
    df["cst_lastname"] = rules.trim(df["cst_lastname"])
    df["cst_marital_status"] = rules.standardize(df["cst_marital_status"], MARITAL_STATUS)
    df["cst_gndr"] = rules.standardize(df["cst_gndr"], CRM_GENDER)
    return _stamp(df, "crm_cust_info", as_of)


def conform_products(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    """
    CRM products.

    The compound prd_key is split into the category id and the product's
    own key, missing cost defaults to 0, the product line code is decoded,
    and the end of each version is derived from the start of the next one.
    """
    df = raw.copy()
    df["cat_id"], df["prd_key"] = rules.split_composite_key(df["prd_key"])
    df["prd_nm"] = rules.trim(df["prd_nm"])
    df["prd_cost"] = rules.default_zero(df["prd_cost"])
    df["prd_line"] = rules.standardize(df["prd_line"], PRODUCT_LINE)
    df["prd_start_dt"] = pd.to_datetime(df["prd_start_dt"], errors="coerce").dt.normalize()
    df["prd_end_dt"] = rules.derive_end_dates(df, "prd_key", "prd_start_dt")
    return _stamp(df, "crm_prd_info", as_of)


def conform_sales(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    """CRM sales lines: decode integer dates and repair sales/price."""
    df = raw.copy()
    df["sls_ord_num"] = rules.trim(df["sls_ord_num"])
    df["sls_prd_key"] = rules.trim(df["sls_prd_key"])
    for column in ("sls_order_dt", "sls_ship_dt", "sls_due_dt"):
        df[column] = rules.parse_int_dates(df[column])
    df["sls_sales"], df["sls_price"] = rules.recompute_measure(
        df["sls_quantity"], df["sls_price"], df["sls_sales"]
    )
    return _stamp(df, "crm_sales_details", as_of)


def conform_erp_customers(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    """ERP customer demographics."""
    df = raw.copy()
    df["cid"] = rules.strip_prefix(df["cid"], "NAS")
    df["bdate"] = rules.null_future_dates(df["bdate"], as_of)
    df["gen"] = rules.standardize(df["gen"], ERP_GENDER)
    return _stamp(df, "erp_cust_az12", as_of)


def conform_locations(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    df = raw.copy()
    df["cid"] = rules.remove_character(df["cid"], "-")
    df["cntry"] = rules.standardize(df["cntry"], COUNTRY)
    return _stamp(df, "erp_loc_a101", as_of)


def conform_categories(raw: pd.DataFrame, as_of: datetime) -> pd.DataFrame:
    df = raw.copy()
    for column in ("id", "cat", "subcat", "maintenance"):
        df[column] = rules.trim(df[column])
    return _stamp(df, "erp_px_cat_g1v2", as_of)


CONFORMERS: Dict[str, Callable[[pd.DataFrame, datetime], pd.DataFrame]] = {
    "crm_cust_info": conform_customers,
    "crm_prd_info": conform_products,
    "crm_sales_details": conform_sales,
    "erp_cust_az12": conform_erp_customers,
    "erp_loc_a101": conform_locations,
    "erp_px_cat_g1v2": conform_categories,
}


def conform(entity: str, raw: pd.DataFrame, as_of: Optional[datetime] = None) -> pd.DataFrame:
    """Conform one raw extent by entity name."""
    if entity not in CONFORMERS:
        raise KeyError(f"No conformance rules for entity: {entity}")
    return CONFORMERS[entity](raw, as_of or datetime.now())


def transform_bronze_to_silver(store: WarehouseStore, as_of: Optional[datetime] = None) -> Dict[str, object]:
    """
    Rebuild every silver extent from its bronze extent.

    An entity whose bronze extent was never loaded is skipped and its silver
    extent left as it was.

    Args:
        store: Warehouse store holding the bronze layer
        as_of: Processing time; defaults to now

    Returns:
        Dictionary with 'loaded' (entity -> row count) and 'skipped' (entity -> reason)
    """
    as_of = as_of or datetime.now()
    loaded, skipped = {}, {}
    batch_start = time.perf_counter()
    logger.info("Loading silver layer")

    for entity, conformer in CONFORMERS.items():
        start = time.perf_counter()
        try:
            raw = store.read("bronze", entity)
        except ExtentNotFoundError as e:
            logger.error(f"Skipping silver_{entity}: {e}")
            skipped[entity] = str(e)
            continue

        conformed = conformer(raw, as_of)
        store.replace("silver", entity, conformed)
        loaded[entity] = len(conformed)

        dropped = len(raw) - len(conformed)
        if dropped:
            logger.info(f"silver_{entity}: dropped {dropped} duplicate or keyless records")
        logger.info(
            f"Loaded {len(conformed)} records into silver_{entity} "
            f"in {time.perf_counter() - start:.2f}s"
        )

    logger.info(
        f"Silver layer loaded: {len(loaded)} extents in {time.perf_counter() - batch_start:.2f}s"
    )
    return {"loaded": loaded, "skipped": skipped}
