"""
Tests for DataService on top of an injected StorageService.
"""

import io
import json

import pandas as pd
import pyarrow.parquet as pq
import pytest

from sensor_store.models import BackendKind
from sensor_store.services import DataService
from sensor_store.storage import registry as registry_module
from sensor_store.utils.exceptions import UnsupportedOperationError


class TestDataService:
    """Test suite for DataService."""

    @pytest.mark.asyncio
    async def test_query_data_post_filters(self, service, sample_readings):
        await service.insert(sample_readings)
        data_service = DataService(service)

        result = await data_service.query_data({"reading_type": "temperature", "min_value": 25.0})

        assert result["success"] is True
        assert result["source"] == service.backend_kind.value
        assert sorted(r["value"] for r in result["data"]) == [25.5, 26.2]
        assert result["total"] == 2

    @pytest.mark.asyncio
    async def test_query_data_sorting_and_pagination(self, service, sample_readings):
        await service.insert(sample_readings)
        data_service = DataService(service)

        first = await data_service.query_data({"sort_by": "value", "sort_order": "ASC", "page_size": 2})
        second = await data_service.query_data({"sort_by": "value", "sort_order": "ASC", "page_size": 2, "page": 2})

        assert [r["value"] for r in first["data"]] == [24.8, 25.5]
        assert [r["value"] for r in second["data"]] == [26.2, 65.2]
        assert first["total"] == second["total"] == 5
        assert second["page"] == 2

    @pytest.mark.asyncio
    async def test_query_data_max_value(self, service, sample_readings):
        await service.insert(sample_readings)

        result = await DataService(service).query_data({"max_value": 25.0})

        assert [r["sensor_id"] for r in result["data"]] == ["sensor_2"]

    @pytest.mark.asyncio
    async def test_sensor_summary(self, service, sample_readings):
        await service.insert(sample_readings)

        summary = await DataService(service).get_sensor_summary("sensor_2")

        assert summary["total_readings"] == 2
        assert summary["reading_types"]["temperature"]["count"] == 1
        assert summary["reading_types"]["humidity"]["max"] == pytest.approx(68.1)
        assert summary["reading_types"]["humidity"]["latest_timestamp"] == "2023-06-02T10:45:00.000Z"

    @pytest.mark.asyncio
    async def test_sensor_summary_unknown_sensor(self, service):
        summary = await DataService(service).get_sensor_summary("nobody")

        assert summary["total_readings"] == 0
        assert summary["reading_types"] == {}

    @pytest.mark.asyncio
    async def test_daily_aggregations(self, service, sample_readings):
        await service.insert(sample_readings)

        result = await DataService(service).get_daily_aggregations({"reading_type": "temperature"})

        rows = {(r["date"], r["sensor_id"]): r for r in result["data"]}
        assert set(rows) == {("2023-06-01", "sensor_1"), ("2023-06-01", "sensor_2"), ("2023-06-02", "sensor_3")}
        assert rows[("2023-06-01", "sensor_1")]["avg_value"] == 25.5
        assert rows[("2023-06-02", "sensor_3")]["count"] == 1

    @pytest.mark.asyncio
    async def test_export_formats(self, service, sample_readings):
        await service.insert(sample_readings)
        data_service = DataService(service)

        as_json = json.loads(await data_service.export_data("json", {"sensor_id": "sensor_1"}))
        as_csv = pd.read_csv(io.StringIO(await data_service.export_data("csv", {"sensor_id": "sensor_1"})))
        as_parquet = pq.read_table(io.BytesIO(await data_service.export_data("parquet"))).to_pandas()

        assert len(as_json) == 2
        assert set(as_csv["reading_type"]) == {"temperature", "humidity"}
        assert len(as_parquet) == 5

    @pytest.mark.asyncio
    async def test_export_rejects_unknown_format(self, service):
        with pytest.raises(ValueError):
            await DataService(service).export_data("xml")

    @pytest.mark.asyncio
    async def test_update_and_delete_surface_capability_gap(self, make_service):
        service = make_service()
        await service.initialize()
        data_service = DataService(service)

        with pytest.raises(UnsupportedOperationError):
            await data_service.update_reading(1, {"value": 2.0})
        with pytest.raises(UnsupportedOperationError):
            await data_service.delete_reading(1)

    @pytest.mark.asyncio
    async def test_update_and_delete_on_database(self, db_service, sample_readings):
        await db_service.insert(sample_readings)
        record = (await db_service.query(limit=1)).data[0]
        data_service = DataService(db_service)

        updated = await data_service.update_reading(record["id"], {"quality_score": 80})
        deleted = await data_service.delete_reading(record["id"])

        assert updated["updated"] == 1
        assert deleted["deleted"] == 1

    @pytest.mark.asyncio
    async def test_from_registry_shares_instance(self, storage_settings, monkeypatch):
        monkeypatch.setattr(registry_module, "_registries", {})
        monkeypatch.setattr(registry_module.AppConfig, "load", classmethod(
            lambda cls, config_path=None: cls(storage=storage_settings)
        ))

        first = await DataService.from_registry()
        second = await DataService.from_registry()
        try:
            assert first.storage is second.storage
            assert first.storage.backend_kind in set(BackendKind)
        finally:
            await registry_module.close_all()


class TestSensorListing:
    """Sensor listing, anomalies and counts."""

    @pytest.mark.asyncio
    async def test_get_sensors(self, service, sample_readings):
        await service.insert(sample_readings)

        sensors = {s["sensor_id"]: s for s in await DataService(service).get_sensors()}

        assert set(sensors) == {"sensor_1", "sensor_2", "sensor_3"}
        assert sensors["sensor_1"]["reading_types"] == ["humidity", "temperature"]
        assert sensors["sensor_1"]["locations"] == ["north"]
        assert sensors["sensor_2"]["latest_reading"] == "2023-06-02T10:45:00.000Z"
        assert sensors["sensor_2"]["total_readings"] == 2
        assert sensors["sensor_3"]["total_readings"] == 1

    @pytest.mark.asyncio
    async def test_get_sensors_empty_store(self, service):
        assert await DataService(service).get_sensors() == []

    @pytest.mark.asyncio
    async def test_get_anomalies(self, make_service, sample_readings):
        service = make_service()
        await service.initialize()
        flagged = dict(sample_readings[0], anomalous_reading=True)
        await service.insert([flagged] + sample_readings[1:])

        result = await DataService(service).get_anomalies({"reading_type": "temperature"})

        assert result["total"] == 1
        assert result["data"][0]["sensor_id"] == "sensor_1"
        assert result["source"] == "flatfile"

    @pytest.mark.asyncio
    async def test_query_data_anomalous_filter(self, make_service, sample_readings):
        service = make_service()
        await service.initialize()
        readings = [dict(r, anomalous_reading=(i == 2)) for i, r in enumerate(sample_readings)]
        await service.insert(readings)
        data_service = DataService(service)

        anomalous = await data_service.query_data({"anomalous": True})
        normal = await data_service.query_data({"anomalous": False})

        assert [r["sensor_id"] for r in anomalous["data"]] == ["sensor_2"]
        assert anomalous["data"][0]["value"] == 24.8
        assert normal["total"] == 4

    @pytest.mark.asyncio
    async def test_get_query_count(self, service, sample_readings):
        await service.insert(sample_readings)
        data_service = DataService(service)

        unfiltered = await data_service.get_query_count()
        filtered = await data_service.get_query_count({"sensor_id": "sensor_2"})

        assert unfiltered == {"total": 5, "source": service.backend_kind.value}
        assert filtered == {"total": 2, "source": service.backend_kind.value}

    @pytest.mark.asyncio
    async def test_daily_aggregations_skip_unparsable_timestamps(self, make_service, storage_settings,
                                                                 sample_readings):
        service = make_service()
        await service.initialize()
        await service.insert(sample_readings)
        (storage_settings.processed_data_path / "foreign.json").write_text(
            json.dumps([{"sensor_id": "S9", "reading_type": "temperature", "timestamp": "n/a", "value": 1.0}])
        )

        result = await DataService(service).get_daily_aggregations()

        assert "S9" not in {r["sensor_id"] for r in result["data"]}
        assert sum(r["count"] for r in result["data"]) == len(sample_readings)
