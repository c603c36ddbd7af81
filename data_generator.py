#!/usr/bin/env python3
"""
Sample Source Generator

Writes the six CRM and ERP extracts the warehouse loads, with the kind of
dirt the silver layer has to clean up: padded names, lower-case codes,
duplicate customer versions, future birthdates, malformed integer dates,
missing or negative prices and inconsistent sales amounts.
"""
import os
import csv
import argparse
from datetime import date, timedelta
from typing import Dict, List

import numpy as np

from sqlite_warehouse.schemas import SOURCES, column_names


DEFAULT_OUTPUT_DIR = "data/sample"
DEFAULT_NUM_CUSTOMERS = 200
DEFAULT_NUM_PRODUCTS = 40
DEFAULT_NUM_ORDERS = 1000

# id, category, subcategory, maintenance
CATEGORIES = [
    ("AC_BR", "Accessories", "Bike Racks", "Yes"),
    ("AC_HE", "Accessories", "Helmets", "No"),
    ("BI_MB", "Bikes", "Mountain Bikes", "Yes"),
    ("BI_RB", "Bikes", "Road Bikes", "Yes"),
    ("BI_TB", "Bikes", "Touring Bikes", "Yes"),
    ("CL_JE", "Clothing", "Jerseys", "No"),
    ("CO_RF", "Components", "Road Frames", "Yes"),
]

FIRST_NAMES = ["Jon", "Elizabeth", "Lauren", "Ian", "Sydney", "Chloe", "Wyatt", "Shannon", "Clarence", "Luke"]
LAST_NAMES = ["Yang", "Johnson", "Walker", "Jenkins", "Bennett", "Young", "Hill", "Wang", "Rai", "Lal"]
MARITAL_CODES = ["S", "M", "s", "m ", "", " M"]
GENDER_CODES = ["F", "M", "f", " m", ""]
ERP_GENDERS = ["F", "Female", "M", "Male", "", " ", "female "]
COUNTRY_CODES = ["DE", "US", "USA", "Germany", "Australia", " Canada", "France", "United Kingdom", ""]
LINE_CODES = ["M", "R", "S", "T", "r ", ""]


def _fmt(value) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return str(value)


def _write(path: str, header: List[str], rows: List[list]) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for row in rows:
            writer.writerow([_fmt(v) for v in row])


def generate_customers(rng: np.random.RandomState, num_customers: int):
    """CRM customers (with stale duplicates) plus the matching ERP demographics and locations."""
    crm, erp, loc = [], [], []
    today = date.today()
    for i in range(num_customers):
        cst_id = 11000 + i
        cst_key = f"AW{cst_id:08d}"
        created = date(2025, 1, 1) + timedelta(days=int(rng.randint(0, 365)))
        first = str(rng.choice(FIRST_NAMES))
        last = str(rng.choice(LAST_NAMES))
        if rng.rand() < 0.15:
            first = f" {first}  "
        if rng.rand() < 0.1:
            last = f"{last} "
        row = [cst_id, cst_key, first, last, str(rng.choice(MARITAL_CODES)), str(rng.choice(GENDER_CODES)), created]

        if rng.rand() < 0.1:
            # an older version of the same customer
            stale = list(row)
            stale[4], stale[5] = "", ""
            stale[6] = created - timedelta(days=int(rng.randint(1, 200)))
            crm.append(stale)
        crm.append(row)

        bdate = date(1940, 1, 1) + timedelta(days=int(rng.randint(0, 25000)))
        if rng.rand() < 0.03:
            bdate = today + timedelta(days=int(rng.randint(30, 3000)))
        cid = f"NAS{cst_key}" if rng.rand() < 0.5 else cst_key
        erp.append([cid, bdate, str(rng.choice(ERP_GENDERS))])

        loc.append([f"{cst_key[:2]}-{cst_key[2:]}", str(rng.choice(COUNTRY_CODES))])

    # a customer row that lost its id
    crm.append([None, "AW99999999", "Ghost", "Record", "S", "F", date(2025, 6, 1)])
    return crm, erp, loc


def generate_products(rng: np.random.RandomState, num_products: int):
    """CRM product versions; some products carry a price history of several versions."""
    rows, current_keys = [], []
    prd_id = 200
    for i in range(num_products):
        cat_id = CATEGORIES[i % len(CATEGORIES)][0]
        own_key = f"{cat_id[:2]}-{i:03d}-{int(rng.randint(10, 99))}"
        raw_key = f"{cat_id.replace('_', '-')}-{own_key}"
        start = date(2020, 1, 1) + timedelta(days=int(rng.randint(0, 365)))
        versions = int(rng.choice([1, 1, 2, 3]))
        for v in range(versions):
            prd_id += 1
            cost = None if rng.rand() < 0.05 else int(rng.randint(5, 1500))
            # source end dates are unreliable; some fall before the start
            bogus_end = start - timedelta(days=int(rng.randint(1, 90))) if rng.rand() < 0.5 else None
            name = f"Product {i:03d}"
            if rng.rand() < 0.1:
                name = f" {name}"
            rows.append([prd_id, raw_key, name, cost, str(rng.choice(LINE_CODES)), start, bogus_end])
            start = start + timedelta(days=int(rng.randint(180, 400)))
        current_keys.append(own_key)
    return rows, current_keys


def generate_sales(rng: np.random.RandomState, num_orders: int, product_keys: List[str], customer_ids: List[int]):
    """CRM sales lines with broken dates and inconsistent money columns."""
    rows = []
    for n in range(num_orders):
        order = date(2024, 1, 1) + timedelta(days=int(rng.randint(0, 600)))
        order_dt = int(order.strftime("%Y%m%d"))
        ship_dt = int((order + timedelta(days=7)).strftime("%Y%m%d"))
        due_dt = int((order + timedelta(days=12)).strftime("%Y%m%d"))

        roll = rng.rand()
        if roll < 0.02:
            order_dt = 0
        elif roll < 0.04:
            order_dt = order_dt // 1000

        quantity = int(rng.randint(1, 4))
        price = int(rng.randint(2, 2500))
        sales = quantity * price

        roll = rng.rand()
        if roll < 0.03:
            price = None
        elif roll < 0.06:
            price = -price
        elif roll < 0.09:
            sales = None
        elif roll < 0.12:
            sales = sales + int(rng.randint(1, 50))

        rows.append([
            f"SO{43697 + n}",
            str(rng.choice(product_keys)),
            int(rng.choice(customer_ids)),
            order_dt, ship_dt, due_dt, sales, quantity, price,
        ])
    return rows


def generate_sample_sources(
    output_dir: str = DEFAULT_OUTPUT_DIR,
    num_customers: int = DEFAULT_NUM_CUSTOMERS,
    num_products: int = DEFAULT_NUM_PRODUCTS,
    num_orders: int = DEFAULT_NUM_ORDERS,
    seed: int = 42,
) -> Dict[str, str]:
    """
    Write all six source extracts under output_dir.

    Args:
        output_dir: Root directory; files land in source_crm/ and source_erp/
        num_customers: Number of distinct CRM customers
        num_products: Number of distinct products
        num_orders: Number of sales lines
        seed: Random seed, so the same arguments produce the same files

    Returns:
        Dictionary of source id -> written file path
    """
    rng = np.random.RandomState(seed)
    crm, erp, loc = generate_customers(rng, num_customers)
    products, product_keys = generate_products(rng, num_products)
    customer_ids = [11000 + i for i in range(num_customers)]
    sales = generate_sales(rng, num_orders, product_keys, customer_ids)

    data = {
        "crm_cust_info": crm,
        "crm_prd_info": products,
        "crm_sales_details": sales,
        "erp_cust_az12": erp,
        "erp_loc_a101": loc,
        "erp_px_cat_g1v2": [list(c) for c in CATEGORIES],
    }

    written = {}
    for source_id, rows in data.items():
        source = SOURCES[source_id]
        path = os.path.join(output_dir, source.file)
        _write(path, column_names(source.columns), rows)
        written[source_id] = path
    return written


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Generate sample CRM and ERP extracts')
    parser.add_argument('--output-dir', type=str, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument('--customers', type=int, default=DEFAULT_NUM_CUSTOMERS)
    parser.add_argument('--products', type=int, default=DEFAULT_NUM_PRODUCTS)
    parser.add_argument('--orders', type=int, default=DEFAULT_NUM_ORDERS)
    parser.add_argument('--seed', type=int, default=42)
    args = parser.parse_args()

    files = generate_sample_sources(args.output_dir, args.customers, args.products, args.orders, args.seed)
    for source_id, path in files.items():
        print(f"Generated {source_id} at: {path}")
