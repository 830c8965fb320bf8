import json
import logging

from rendition_core.logging import BaseFieldFilter, JsonFormatter, asset_logger


def test_json_formatter_includes_pipeline_fields():
    record = logging.LogRecord(
        name="rendition_core.pipeline.orchestrator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Derivative stored",
        args=(),
        exc_info=None,
    )
    record.source_asset_id = "asset-1"
    record.profile = "small"
    record.bytes_written = 1234
    BaseFieldFilter(service="rendition-test", env="test", version="1.0").filter(record)

    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "Derivative stored"
    assert payload["service"] == "rendition-test"
    assert payload["env"] == "test"
    assert payload["source_asset_id"] == "asset-1"
    assert payload["profile"] == "small"
    assert payload["bytes_written"] == 1234


def test_asset_logger_merges_bound_fields(caplog):
    logger = logging.getLogger("rendition_core.tests")
    log = asset_logger(logger, "asset-7", "VIDEO")
    with caplog.at_level(logging.INFO, logger="rendition_core.tests"):
        log.info("Derivative stored", extra={"profile": "large"})

    record = caplog.records[-1]
    assert record.source_asset_id == "asset-7"
    assert record.asset_kind == "VIDEO"
    assert record.profile == "large"
