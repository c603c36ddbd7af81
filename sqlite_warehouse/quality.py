"""
Quality gate: read-only checks over the silver extents and gold views.

Every check_* function takes DataFrames and returns the offending rows
(an empty frame means the check passed). run_quality_gate runs the fixed
battery and collects the results into a QualityReport. Nothing here
modifies data or stops the pipeline.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .rules import naive_timestamp
from .silver import COUNTRY, CRM_GENDER, ERP_GENDER, MARITAL_STATUS, PRODUCT_LINE, canonical_labels


logger = logging.getLogger("sqlite_warehouse.quality")

EARLIEST_BIRTHDATE = pd.Timestamp("1924-01-01")


def check_unique(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Rows whose non-null value in column occurs more than once."""
    values = df[column]
    return df[values.notna() & values.duplicated(keep=False)]


def check_not_null(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Rows with a null in any of the required columns."""
    return df[df[list(columns)].isna().any(axis=1)]


def check_referential_integrity(
    fact: pd.DataFrame,
    column: str,
    dimension: pd.DataFrame,
    dimension_column: str,
    allow_null: bool = False,
) -> pd.DataFrame:
    """
    Fact rows whose reference does not exist in the dimension.

    A null reference counts as a violation unless allow_null is set, since
    an unresolved natural key shows up in the fact as a null surrogate key.
    """
    keys = fact[column]
    dangling = keys.notna() & ~keys.isin(dimension[dimension_column].dropna())
    if not allow_null:
        dangling = dangling | keys.isna()
    return fact[dangling]


def check_standardized(df: pd.DataFrame, column: str, allowed: Iterable[str]) -> pd.DataFrame:
    """Rows whose value is outside the canonical label set (nulls included)."""
    allowed = set(allowed)
    return df[~df[column].map(lambda v: isinstance(v, str) and v in allowed).astype(bool)]


def check_trimmed(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Rows where a text value carries leading or trailing whitespace."""
    def untrimmed(value) -> bool:
        return isinstance(value, str) and value != value.strip()

    mask = pd.Series(False, index=df.index)
    for column in columns:
        mask |= df[column].map(untrimmed).astype(bool)
    return df[mask]


def check_measure_consistency(
    df: pd.DataFrame,
    measure: str,
    quantity: str,
    price: str,
) -> pd.DataFrame:
    """Rows where measure != quantity * price or any of the three is null or non-positive."""
    msr = pd.to_numeric(df[measure], errors="coerce").astype("float64")
    qty = pd.to_numeric(df[quantity], errors="coerce").astype("float64")
    prc = pd.to_numeric(df[price], errors="coerce").astype("float64")

    missing = msr.isna() | qty.isna() | prc.isna()
    non_positive = (msr <= 0) | (qty <= 0) | (prc <= 0)
    inconsistent = ~missing & ~np.isclose(msr, qty * prc)
    return df[missing | non_positive | inconsistent]


def check_non_negative(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Rows where a numeric value is null or negative."""
    values = pd.to_numeric(df[column], errors="coerce")
    return df[values.isna() | (values < 0)]


def check_date_order(df: pd.DataFrame, earlier: str, later: str) -> pd.DataFrame:
    """Rows where the earlier date falls after the later one; nulls are ignored."""
    first = pd.to_datetime(df[earlier], errors="coerce")
    second = pd.to_datetime(df[later], errors="coerce")
    return df[first.notna() & second.notna() & (first > second)]


def check_date_range(
    df: pd.DataFrame,
    column: str,
    minimum: Optional[pd.Timestamp] = None,
    maximum: Optional[pd.Timestamp] = None,
) -> pd.DataFrame:
    """Rows whose date lies outside [minimum, maximum]; nulls are ignored."""
    dates = pd.to_datetime(df[column], errors="coerce")
    mask = pd.Series(False, index=df.index)
    if minimum is not None:
        mask |= dates < pd.Timestamp(minimum)
    if maximum is not None:
        mask |= dates > pd.Timestamp(maximum)
    return df[dates.notna() & mask]


@dataclass
class CheckResult:
    """Outcome of one check: its name, where it ran and the rows it flagged."""

    name: str
    layer: str
    extent: str
    offending: pd.DataFrame

    @property
    def passed(self) -> bool:
        return self.offending.empty

    @property
    def violations(self) -> int:
        return len(self.offending)


@dataclass
class QualityReport:
    """Results of one quality gate run."""

    results: List[CheckResult] = field(default_factory=list)
    checked_at: datetime = field(default_factory=datetime.now)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> List[CheckResult]:
        return [r for r in self.results if not r.passed]

    def __getitem__(self, name: str) -> CheckResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)

    def summary(self) -> pd.DataFrame:
        """One line per check with its violation count."""
        return pd.DataFrame(
            [
                {
                    "check": r.name,
                    "layer": r.layer,
                    "extent": r.extent,
                    "violations": r.violations,
                    "status": "PASS" if r.passed else "FAIL",
                }
                for r in self.results
            ],
            columns=["check", "layer", "extent", "violations", "status"],
        )

    def to_dict(self, max_rows: int = 20) -> Dict[str, object]:
        """JSON-ready form of the report, with at most max_rows sample rows per failure."""
        return {
            "checked_at": self.checked_at.strftime('%Y-%m-%d %H:%M:%S'),
            "passed": self.passed,
            "checks": [
                {
                    "check": r.name,
                    "layer": r.layer,
                    "extent": r.extent,
                    "violations": r.violations,
                    "sample": json.loads(
                        r.offending.head(max_rows).to_json(orient="records", date_format="iso")
                    ),
                }
                for r in self.results
            ],
        }

    def write_json(self, path: str, max_rows: int = 20) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(max_rows=max_rows), f, indent=2)


def silver_checks(as_of: datetime) -> List[tuple]:
    """The fixed battery of silver checks."""
    return [
        ("crm_cust_info.cst_id_not_null", "crm_cust_info",
         lambda f: check_not_null(f["crm_cust_info"], ["cst_id"])),
        ("crm_cust_info.cst_id_unique", "crm_cust_info",
         lambda f: check_unique(f["crm_cust_info"], "cst_id")),
        ("crm_cust_info.trimmed", "crm_cust_info",
         lambda f: check_trimmed(f["crm_cust_info"], ["cst_key", "cst_firstname", "cst_lastname"])),
        ("crm_cust_info.marital_status_standardized", "crm_cust_info",
         lambda f: check_standardized(f["crm_cust_info"], "cst_marital_status", canonical_labels(MARITAL_STATUS))),
        ("crm_cust_info.gender_standardized", "crm_cust_info",
         lambda f: check_standardized(f["crm_cust_info"], "cst_gndr", canonical_labels(CRM_GENDER))),
        ("crm_prd_info.prd_id_not_null", "crm_prd_info",
         lambda f: check_not_null(f["crm_prd_info"], ["prd_id"])),
        ("crm_prd_info.prd_id_unique", "crm_prd_info",
         lambda f: check_unique(f["crm_prd_info"], "prd_id")),
        ("crm_prd_info.trimmed", "crm_prd_info",
         lambda f: check_trimmed(f["crm_prd_info"], ["prd_nm"])),
        ("crm_prd_info.cost_non_negative", "crm_prd_info",
         lambda f: check_non_negative(f["crm_prd_info"], "prd_cost")),
        ("crm_prd_info.product_line_standardized", "crm_prd_info",
         lambda f: check_standardized(f["crm_prd_info"], "prd_line", canonical_labels(PRODUCT_LINE))),
        ("crm_prd_info.start_before_end", "crm_prd_info",
         lambda f: check_date_order(f["crm_prd_info"], "prd_start_dt", "prd_end_dt")),
        ("crm_sales_details.order_before_ship", "crm_sales_details",
         lambda f: check_date_order(f["crm_sales_details"], "sls_order_dt", "sls_ship_dt")),
        ("crm_sales_details.order_before_due", "crm_sales_details",
         lambda f: check_date_order(f["crm_sales_details"], "sls_order_dt", "sls_due_dt")),
        ("crm_sales_details.sales_consistent", "crm_sales_details",
         lambda f: check_measure_consistency(f["crm_sales_details"], "sls_sales", "sls_quantity", "sls_price")),
        ("erp_cust_az12.birthdate_in_range", "erp_cust_az12",
         lambda f: check_date_range(f["erp_cust_az12"], "bdate", EARLIEST_BIRTHDATE, naive_timestamp(as_of))),
        ("erp_cust_az12.gender_standardized", "erp_cust_az12",
         lambda f: check_standardized(f["erp_cust_az12"], "gen", canonical_labels(ERP_GENDER))),
        ("erp_loc_a101.country_standardized", "erp_loc_a101",
         lambda f: check_standardized(f["erp_loc_a101"], "cntry", canonical_labels(COUNTRY))),
        ("erp_px_cat_g1v2.trimmed", "erp_px_cat_g1v2",
         lambda f: check_trimmed(f["erp_px_cat_g1v2"], ["cat", "subcat", "maintenance"])),
    ]


def gold_checks() -> List[tuple]:
    """The fixed battery of gold checks."""
    return [
        ("dim_customers.customer_key_unique", "dim_customers",
         lambda f: check_unique(f["dim_customers"], "customer_key")),
        ("dim_customers.customer_id_not_null", "dim_customers",
         lambda f: check_not_null(f["dim_customers"], ["customer_key", "customer_id"])),
        ("dim_customers.gender_standardized", "dim_customers",
         lambda f: check_standardized(f["dim_customers"], "gender", canonical_labels(CRM_GENDER))),
        ("dim_products.product_key_unique", "dim_products",
         lambda f: check_unique(f["dim_products"], "product_key")),
        ("dim_products.product_number_not_null", "dim_products",
         lambda f: check_not_null(f["dim_products"], ["product_key", "product_number"])),
        ("fact_sales.product_key_exists", "fact_sales",
         lambda f: check_referential_integrity(f["fact_sales"], "product_key", f["dim_products"], "product_key")),
        ("fact_sales.customer_key_exists", "fact_sales",
         lambda f: check_referential_integrity(f["fact_sales"], "customer_key", f["dim_customers"], "customer_key")),
        ("fact_sales.sales_consistent", "fact_sales",
         lambda f: check_measure_consistency(f["fact_sales"], "sales_amount", "quantity", "price")),
    ]


def _run(checks: List[tuple], layer: str, frames: Dict[str, pd.DataFrame]) -> List[CheckResult]:
    results = []
    for name, extent, check in checks:
        if extent not in frames:
            logger.warning(f"Skipping {name}: {layer} extent {extent} is not available")
            continue
        offending = check(frames)
        result = CheckResult(name=name, layer=layer, extent=extent, offending=offending)
        if result.passed:
            logger.debug(f"Check {name} passed")
        else:
            logger.warning(f"Check {name} failed with {result.violations} offending rows")
        results.append(result)
    return results


def run_quality_gate(
    silver: Optional[Dict[str, pd.DataFrame]] = None,
    gold: Optional[Dict[str, pd.DataFrame]] = None,
    as_of: Optional[datetime] = None,
) -> QualityReport:
    """
    Run the silver and gold batteries.

    Args:
        silver: Silver extents keyed by entity name
        gold: Gold views keyed by view name
        as_of: Reference time for date range checks; defaults to now

    Returns:
        QualityReport with one CheckResult per check that could run
    """
    as_of = as_of or datetime.now()
    report = QualityReport()
    if silver:
        report.results.extend(_run(silver_checks(as_of), "silver", silver))
    if gold:
        report.results.extend(_run(gold_checks(), "gold", gold))

    logger.info(
        f"Quality gate: {len(report.results) - len(report.failures)} checks passed, "
        f"{len(report.failures)} failed"
    )
    return report
