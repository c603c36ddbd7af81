"""
Gold layer: the star schema served on top of the silver extents.

Dimensions and facts are computed on read and never stored. Surrogate keys
are dense 1..N numbers assigned from a total sort order, so they are stable
only while the silver input and its ordering stay the same.
"""
import logging
from collections import namedtuple
from typing import Dict, Iterable, Optional, Sequence

import pandas as pd

from . import rules
from .store import WarehouseStore


logger = logging.getLogger("sqlite_warehouse.gold")

# frame: auxiliary extent, left_on: column of the primary, right_on: column of frame
AuxiliaryJoin = namedtuple("AuxiliaryJoin", ["frame", "left_on", "right_on"])

# dimension: built dimension, left_on: fact column, right_on: dimension column,
# key_column: surrogate key column to bring into the fact
DimensionLookup = namedtuple("DimensionLookup", ["dimension", "left_on", "right_on", "key_column"])


def _unique_on(frame: pd.DataFrame, column: str, label: str) -> pd.DataFrame:
    """
    Reduce frame to one row per non-null value of column so a left join can
    neither fan out nor pair null keys with each other.
    """
    frame = frame[frame[column].notna()]
    duplicated = frame.duplicated(subset=[column], keep="first")
    if duplicated.any():
        logger.warning(f"{label}: {int(duplicated.sum())} rows share a join key, keeping the first of each")
    return frame[~duplicated]


def assign_surrogate_keys(
    df: pd.DataFrame,
    order_by: Sequence[str],
    natural_key: str,
    key_column: str,
) -> pd.DataFrame:
    """
    Sort df by order_by then natural_key and number the rows from 1.

    The sort is stable with nulls last, which makes the order total for any
    input whose natural key is unique.
    """
    sort_columns = list(order_by)
    if natural_key not in sort_columns:
        sort_columns.append(natural_key)
    ordered = df.sort_values(sort_columns, kind="mergesort", na_position="last").reset_index(drop=True)
    ordered.insert(0, key_column, pd.array(range(1, len(ordered) + 1), dtype="Int64"))
    return ordered


def build_dimension(
    primary: pd.DataFrame,
    joins: Iterable[AuxiliaryJoin] = (),
    order_by: Sequence[str] = (),
    natural_key: Optional[str] = None,
    key_column: str = "surrogate_key",
) -> pd.DataFrame:
    """
    Build a dimension from a conformed extent.

    Args:
        primary: Conformed extent, one row per dimension member
        joins: Auxiliary extents, left-joined on their declared keys
        order_by: Columns that decide surrogate key order
        natural_key: Tie-break column (default: first order_by column)
        key_column: Name of the surrogate key column

    Returns:
        One row per primary row, surrogate key first
    """
    natural_key = natural_key or (order_by[0] if order_by else primary.columns[0])
    result = primary.reset_index(drop=True)

    for join in joins:
        aux = _unique_on(join.frame, join.right_on, f"join on {join.right_on}")
        overlap = [c for c in aux.columns if c in result.columns and c != join.right_on]
        if overlap:
            aux = aux.drop(columns=overlap)
        result = result.merge(aux, how="left", left_on=join.left_on, right_on=join.right_on)
        if join.right_on != join.left_on and join.right_on in result.columns:
            result = result.drop(columns=[join.right_on])

    return assign_surrogate_keys(result, order_by, natural_key, key_column)


def build_fact(conformed: pd.DataFrame, lookups: Iterable[DimensionLookup]) -> pd.DataFrame:
    """
    Resolve natural-key references of a conformed extent to surrogate keys.

    Rows whose reference has no match are kept with a null surrogate key.
    """
    result = conformed.reset_index(drop=True)
    for lookup in lookups:
        keys = lookup.dimension[[lookup.right_on, lookup.key_column]]
        keys = _unique_on(keys, lookup.right_on, f"dimension key {lookup.right_on}")
        keys = keys.rename(columns={lookup.right_on: "__natural_key"})
        result = result.merge(keys, how="left", left_on=lookup.left_on, right_on="__natural_key")
        result = result.drop(columns=["__natural_key"])
        result[lookup.key_column] = result[lookup.key_column].astype("Int64")

        unresolved = int((result[lookup.key_column].isna()).sum())
        if unresolved:
            logger.warning(f"{unresolved} rows have no match for {lookup.left_on} -> {lookup.key_column}")
    return result


def dim_customers(
    customers: pd.DataFrame,
    erp_customers: pd.DataFrame,
    locations: pd.DataFrame,
) -> pd.DataFrame:
    """Customer dimension: CRM customers enriched with ERP birthdate, gender and country."""
    erp = erp_customers[["cid", "bdate", "gen"]]
    loc = locations[["cid", "cntry"]].rename(columns={"cid": "loc_cid"})
    primary = customers.drop(columns=["dwh_create_date"], errors="ignore")

    dim = build_dimension(
        primary,
        joins=[
            AuxiliaryJoin(erp, "cst_key", "cid"),
            AuxiliaryJoin(loc, "cst_key", "loc_cid"),
        ],
        order_by=["cst_id"],
        key_column="customer_key",
    )

    # CRM is the master for gender; ERP only fills the gaps
    crm_gender = dim["cst_gndr"]
    fallback = dim["gen"].where(dim["gen"].notna(), rules.UNKNOWN)
    dim["gender"] = crm_gender.where(crm_gender != rules.UNKNOWN, fallback)

    dim = dim.rename(columns={
        "cst_id": "customer_id",
        "cst_key": "customer_number",
        "cst_firstname": "first_name",
        "cst_lastname": "last_name",
        "cntry": "country",
        "cst_marital_status": "marital_status",
        "bdate": "birthdate",
        "cst_create_date": "create_date",
    })
    return dim[[
        "customer_key", "customer_id", "customer_number", "first_name", "last_name",
        "country", "marital_status", "gender", "birthdate", "create_date",
    ]]


def dim_products(products: pd.DataFrame, categories: pd.DataFrame) -> pd.DataFrame:
    """Product dimension over current product versions only."""
    current = products[products["prd_end_dt"].isna()]
    current = current.drop(columns=["dwh_create_date"], errors="ignore")
    cats = categories[["id", "cat", "subcat", "maintenance"]]

    dim = build_dimension(
        current,
        joins=[AuxiliaryJoin(cats, "cat_id", "id")],
        order_by=["prd_start_dt", "prd_key"],
        natural_key="prd_key",
        key_column="product_key",
    )
    dim = dim.rename(columns={
        "prd_id": "product_id",
        "prd_key": "product_number",
        "prd_nm": "product_name",
        "cat_id": "category_id",
        "cat": "category",
        "subcat": "subcategory",
        "prd_cost": "cost",
        "prd_line": "product_line",
        "prd_start_dt": "start_date",
    })
    return dim[[
        "product_key", "product_id", "product_number", "product_name", "category_id",
        "category", "subcategory", "maintenance", "cost", "product_line", "start_date",
    ]]


def fact_sales(sales: pd.DataFrame, products: pd.DataFrame, customers: pd.DataFrame) -> pd.DataFrame:
    """Sales fact keyed by product and customer surrogate keys."""
    fact = build_fact(sales, [
        DimensionLookup(products, "sls_prd_key", "product_number", "product_key"),
        DimensionLookup(customers, "sls_cust_id", "customer_id", "customer_key"),
    ])
    fact = fact.rename(columns={
        "sls_ord_num": "order_number",
        "sls_order_dt": "order_date",
        "sls_ship_dt": "shipping_date",
        "sls_due_dt": "due_date",
        "sls_sales": "sales_amount",
        "sls_quantity": "quantity",
        "sls_price": "price",
    })
    return fact[[
        "order_number", "product_key", "customer_key", "order_date", "shipping_date",
        "due_date", "sales_amount", "quantity", "price",
    ]]


class GoldLayer:
    """Read-only star schema views over the silver extents of a store."""

    VIEWS = ("dim_customers", "dim_products", "fact_sales")

    def __init__(self, store: WarehouseStore):
        self.store = store

    def dim_customers(self) -> pd.DataFrame:
        return dim_customers(
            self.store.read("silver", "crm_cust_info"),
            self.store.read("silver", "erp_cust_az12"),
            self.store.read("silver", "erp_loc_a101"),
        )

    def dim_products(self) -> pd.DataFrame:
        return dim_products(
            self.store.read("silver", "crm_prd_info"),
            self.store.read("silver", "erp_px_cat_g1v2"),
        )

    def fact_sales(self) -> pd.DataFrame:
        return fact_sales(
            self.store.read("silver", "crm_sales_details"),
            self.dim_products(),
            self.dim_customers(),
        )

    def views(self) -> Dict[str, pd.DataFrame]:
        """Materialize all three views from one consistent set of dimensions."""
        customers = self.dim_customers()
        products = self.dim_products()
        sales = fact_sales(self.store.read("silver", "crm_sales_details"), products, customers)
        return {"dim_customers": customers, "dim_products": products, "fact_sales": sales}

    def view(self, name: str) -> pd.DataFrame:
        if name not in self.VIEWS:
            raise KeyError(f"Unknown gold view: {name}")
        return getattr(self, name)()
