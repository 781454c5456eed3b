from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

from cdk_pipeline.setup import logging_utils


@patch("cdk_pipeline.setup.logging_utils.logging.basicConfig")
def test_configure_logging_defaults_to_info(mock_basic_config: MagicMock, monkeypatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    logging_utils.configure_logging()

    kwargs = mock_basic_config.call_args.kwargs
    assert kwargs["force"] is True
    assert kwargs["level"] == logging.INFO
    assert len(kwargs["handlers"]) == 1
    assert kwargs["handlers"][0].formatter._fmt == logging_utils.LOG_FORMAT


@patch("cdk_pipeline.setup.logging_utils.logging.basicConfig")
def test_configure_logging_verbose(mock_basic_config: MagicMock, monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    logging_utils.configure_logging(verbose=True)

    assert mock_basic_config.call_args.kwargs["level"] == logging.DEBUG


@patch("cdk_pipeline.setup.logging_utils.logging.basicConfig")
def test_configure_logging_level_from_environment(mock_basic_config: MagicMock, monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")

    logging_utils.configure_logging()

    assert mock_basic_config.call_args.kwargs["level"] == logging.WARNING
    assert logging.getLogger("botocore").level == logging.WARNING
