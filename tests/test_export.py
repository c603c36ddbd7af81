"""
Tests for Parquet export and S3 upload with a mocked client.
"""
import os
from unittest.mock import MagicMock

import pandas as pd
import pytest
from botocore.exceptions import ClientError

from sqlite_warehouse.export import S3Exporter, export_frames


@pytest.fixture
def parquet_file(tmp_path, raw_sales):
    files = export_frames("bronze", {"crm_sales_details": raw_sales}, str(tmp_path), timestamp="20240101_120000")
    return files["crm_sales_details"]


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.head_object.return_value = {"Metadata": {}}
    return client


class TestExportFrames:

    def test_writes_one_file_per_extent(self, tmp_path, raw_sales, raw_locations):
        files = export_frames(
            "silver",
            {"crm_sales_details": raw_sales, "erp_loc_a101": raw_locations},
            str(tmp_path / "exports"),
            timestamp="20240101_120000",
        )

        assert set(files) == {"crm_sales_details", "erp_loc_a101"}
        assert os.path.basename(files["erp_loc_a101"]) == "silver_erp_loc_a101_20240101_120000.parquet"
        df = pd.read_parquet(files["crm_sales_details"])
        assert len(df) == 4
        assert df["sls_ord_num"].tolist()[0] == "SO43697"

    def test_empty_frame_exports_schema(self, tmp_path, raw_locations):
        files = export_frames("gold", {"empty": raw_locations.iloc[0:0]}, str(tmp_path))
        df = pd.read_parquet(files["empty"])
        assert df.empty
        assert list(df.columns) == ["cid", "cntry"]

    def test_invalid_layer(self, tmp_path):
        with pytest.raises(ValueError):
            export_frames("platinum", {}, str(tmp_path))


class TestS3Exporter:

    def test_upload_success(self, parquet_file, s3_client):
        exporter = S3Exporter(bucket_prefix="dwh", s3_client=s3_client)

        uri = exporter.upload_file(parquet_file, "bronze", partition_key="date=2024-01-01")

        assert uri == "s3://dwh-bronze/bronze/date=2024-01-01/bronze_crm_sales_details_20240101_120000.parquet"
        kwargs = s3_client.upload_file.call_args.kwargs
        assert kwargs["Bucket"] == "dwh-bronze"
        assert kwargs["ExtraArgs"]["Metadata"]["md5_hash"] == S3Exporter._calculate_md5(parquet_file)

    def test_retries_after_client_error(self, parquet_file, s3_client):
        s3_client.upload_file.side_effect = [
            ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject"),
            None,
        ]
        exporter = S3Exporter(bucket_prefix="dwh", retry_delay=0, s3_client=s3_client)

        assert exporter.upload_file(parquet_file, "bronze") is not None
        assert s3_client.upload_file.call_count == 2

    def test_md5_mismatch_fails_after_all_attempts(self, parquet_file, s3_client):
        s3_client.head_object.return_value = {"Metadata": {"md5_hash": "bad"}}
        exporter = S3Exporter(bucket_prefix="dwh", retry_attempts=2, retry_delay=0, s3_client=s3_client)

        assert exporter.upload_file(parquet_file, "bronze") is None
        assert s3_client.upload_file.call_count == 2

    def test_missing_file(self, tmp_path, s3_client):
        exporter = S3Exporter(s3_client=s3_client)
        assert exporter.upload_file(str(tmp_path / "missing.parquet"), "gold") is None
        s3_client.upload_file.assert_not_called()

    def test_invalid_layer(self, s3_client):
        with pytest.raises(ValueError):
            S3Exporter(s3_client=s3_client).bucket_for("platinum")

    def test_upload_layer(self, parquet_file, s3_client):
        exporter = S3Exporter(bucket_prefix="dwh", s3_client=s3_client)
        result = exporter.upload_layer("bronze", [parquet_file])
        assert list(result) == [parquet_file]
        assert result[parquet_file].startswith("s3://dwh-bronze/bronze/date=")
