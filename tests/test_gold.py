"""
Tests for surrogate key assignment and the gold star schema views.
"""
import pandas as pd
import pytest

from sqlite_warehouse import gold, silver
from sqlite_warehouse.gold import AuxiliaryJoin, DimensionLookup, GoldLayer
from sqlite_warehouse.quality import check_referential_integrity

from tests.conftest import raw_frame


@pytest.fixture
def silver_frames(raw_customers, raw_erp_customers, raw_locations, raw_products,
                  raw_categories, raw_sales, as_of):
    return {
        "crm_cust_info": silver.conform_customers(raw_customers, as_of),
        "erp_cust_az12": silver.conform_erp_customers(raw_erp_customers, as_of),
        "erp_loc_a101": silver.conform_locations(raw_locations, as_of),
        "crm_prd_info": silver.conform_products(raw_products, as_of),
        "erp_px_cat_g1v2": silver.conform_categories(raw_categories, as_of),
        "crm_sales_details": silver.conform_sales(raw_sales, as_of),
    }


class TestBuildDimension:

    def test_keys_are_dense_and_follow_order(self):
        primary = pd.DataFrame({"id": [30, 10, 20], "name": ["c", "a", "b"]})
        dim = gold.build_dimension(primary, order_by=["id"], key_column="sk")

        assert dim["sk"].tolist() == [1, 2, 3]
        assert dim["id"].tolist() == [10, 20, 30]
        assert list(dim.columns) == ["sk", "id", "name"]

    def test_ties_broken_by_natural_key(self):
        primary = pd.DataFrame({
            "start": pd.to_datetime(["2020-01-01", "2019-01-01", "2020-01-01"]),
            "key": ["B", "Z", "A"],
        })
        dim = gold.build_dimension(primary, order_by=["start"], natural_key="key", key_column="sk")
        assert dim["key"].tolist() == ["Z", "A", "B"]

    def test_unmatched_auxiliary_keeps_primary_row(self):
        primary = pd.DataFrame({"id": [1, 2], "code": ["x", "y"]})
        aux = pd.DataFrame({"code": ["x"], "label": ["Ex"]})
        dim = gold.build_dimension(primary, [AuxiliaryJoin(aux, "code", "code")], order_by=["id"])

        assert len(dim) == 2
        assert dim.loc[0, "label"] == "Ex"
        assert pd.isna(dim.loc[1, "label"])

    def test_repeated_auxiliary_key_does_not_multiply_rows(self):
        primary = pd.DataFrame({"id": [1], "code": ["x"]})
        aux = pd.DataFrame({"aux_code": ["x", "x"], "label": ["first", "second"]})
        dim = gold.build_dimension(primary, [AuxiliaryJoin(aux, "code", "aux_code")], order_by=["id"])

        assert len(dim) == 1
        assert dim.loc[0, "label"] == "first"
        assert "aux_code" not in dim.columns

    def test_rebuild_is_deterministic(self):
        primary = pd.DataFrame({"id": [3, 1, 2, 5, 4]})
        first = gold.build_dimension(primary, order_by=["id"])
        second = gold.build_dimension(primary.sample(frac=1, random_state=7), order_by=["id"])
        pd.testing.assert_frame_equal(first, second)


class TestBuildFact:

    def test_unresolved_reference_is_kept_with_null_key(self):
        dim = pd.DataFrame({"sk": [1, 2], "nk": ["a", "b"]})
        facts = pd.DataFrame({"ref": ["a", "zzz", "b"], "amount": [1, 2, 3]})

        result = gold.build_fact(facts, [DimensionLookup(dim, "ref", "nk", "sk")])

        assert len(result) == 3
        assert result["sk"].tolist()[0] == 1
        assert pd.isna(result.loc[1, "sk"])
        assert result.loc[2, "sk"] == 2


class TestStarSchema:

    def test_dim_customers(self, silver_frames):
        dim = gold.dim_customers(
            silver_frames["crm_cust_info"], silver_frames["erp_cust_az12"], silver_frames["erp_loc_a101"],
        )

        assert dim["customer_key"].tolist() == [1, 2, 3]
        assert dim["customer_id"].tolist() == [11000, 11001, 11002]
        assert dim["country"].tolist() == ["Australia", "Germany", "United States"]
        # CRM gender wins unless it is n/a, then ERP fills in
        assert dim["gender"].tolist() == ["Male", "Male", "Male"]
        assert pd.isna(dim.loc[1, "birthdate"])
        assert dim.loc[0, "birthdate"] == pd.Timestamp("1971-10-06")

    def test_gender_falls_back_to_na(self, silver_frames):
        erp = silver_frames["erp_cust_az12"].iloc[0:0]
        dim = gold.dim_customers(silver_frames["crm_cust_info"], erp, silver_frames["erp_loc_a101"])
        assert dim.set_index("customer_id").loc[11002, "gender"] == "n/a"

    def test_dim_products_only_current_versions(self, silver_frames):
        dim = gold.dim_products(silver_frames["crm_prd_info"], silver_frames["erp_px_cat_g1v2"])

        assert dim["product_number"].tolist() == ["FR-R92B-58", "BK-R93R-62", "HL-U509"]
        assert dim["product_key"].tolist() == [1, 2, 3]
        assert dim["product_id"].tolist() == [210, 212, 213]
        assert dim["category"].tolist() == ["Components", "Bikes", "Accessories"]
        assert dim.loc[2, "maintenance"] == "No"

    def test_undated_product_version_is_not_current(self, silver_frames, as_of):
        raw = raw_frame("crm_prd_info", [
            [300, "AC-HE-HL-U510", "Helmet v1", 10, "S", "2012-07-01", None],
            [301, "AC-HE-HL-U510", "Helmet v0", 9, "S", None, None],
        ])
        products = silver.conform_products(raw, as_of)

        dim = gold.dim_products(products, silver_frames["erp_px_cat_g1v2"])

        assert dim["product_id"].tolist() == [300]

    def test_fact_sales_resolves_keys(self, silver_frames):
        customers = gold.dim_customers(
            silver_frames["crm_cust_info"], silver_frames["erp_cust_az12"], silver_frames["erp_loc_a101"],
        )
        products = gold.dim_products(silver_frames["crm_prd_info"], silver_frames["erp_px_cat_g1v2"])
        fact = gold.fact_sales(silver_frames["crm_sales_details"], products, customers)

        assert list(fact.columns) == [
            "order_number", "product_key", "customer_key", "order_date", "shipping_date",
            "due_date", "sales_amount", "quantity", "price",
        ]
        assert fact["product_key"].tolist() == [2, 3, 1, 3]
        assert fact["customer_key"].tolist() == [1, 2, 3, 2]

    def test_referential_gap_is_retained_and_reported(self, silver_frames, raw_sales, as_of):
        orphan = pd.concat([
            raw_sales,
            raw_frame("crm_sales_details", [["SO99999", "HL-U509", 424242, 20231026, 20231102, 20231107, 35, 1, 35]]),
        ], ignore_index=True)
        sales = silver.conform_sales(orphan, as_of)

        customers = gold.dim_customers(
            silver_frames["crm_cust_info"], silver_frames["erp_cust_az12"], silver_frames["erp_loc_a101"],
        )
        products = gold.dim_products(silver_frames["crm_prd_info"], silver_frames["erp_px_cat_g1v2"])
        fact = gold.fact_sales(sales, products, customers)

        assert len(fact) == 5
        violations = check_referential_integrity(fact, "customer_key", customers, "customer_key")
        assert violations["order_number"].tolist() == ["SO99999"]
        assert check_referential_integrity(fact, "product_key", products, "product_key").empty


class TestGoldLayer:

    def test_views_read_from_store(self, store, silver_frames):
        for entity, frame in silver_frames.items():
            store.replace("silver", entity, frame)

        layer = GoldLayer(store)
        views = layer.views()

        assert set(views) == {"dim_customers", "dim_products", "fact_sales"}
        assert len(views["fact_sales"]) == 4
        pd.testing.assert_frame_equal(layer.view("dim_products"), views["dim_products"])

    def test_unknown_view(self, store):
        with pytest.raises(KeyError):
            GoldLayer(store).view("dim_weather")
