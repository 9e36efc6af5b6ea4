import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from services.studio import cli
from services.studio.providers import StudioAPIClient
from shared.utils import config


def test_in_process_pdf_and_gif_export(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out_dir = tmp_path / "out"
    exit_code = cli.main(
        ["A kitten and a kite", "--format", "pdf", "--format", "gif", "--output-dir", str(out_dir)]
    )

    assert exit_code == 0
    written = sorted(out_dir.iterdir())
    assert [path.suffix for path in written] == [".gif", ".pdf"]
    assert all(path.name.startswith("a-kitten-and-a-kite-") for path in written)
    assert written[1].read_bytes().startswith(b"%PDF")
    assert "Story ready" in capsys.readouterr().out


def test_disabled_format_exits_non_zero(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    config.set_pipeline_config({"features": {"export_gif": False}})
    assert cli.main(["A kitten", "--format", "gif", "--output-dir", str(out_dir)]) == 1
    assert list(out_dir.iterdir()) == []


def test_verbose_enables_debug_logging(tmp_path: Path) -> None:
    try:
        assert cli.main(["A kitten", "--verbose", "--output-dir", str(tmp_path / "out")]) == 0
        assert logging.getLogger("studio-exporters").level == logging.DEBUG
    finally:
        for name in cli.PIPELINE_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO)


def test_remote_uses_configured_service_url() -> None:
    config.set("studio_api_url", "http://stories.local:9000")
    args = cli.build_parser().parse_args(["A kitten", "--remote"])
    health = AsyncMock(return_value={"status": "ok", "provider": "stub"})
    author = AsyncMock(return_value=[])

    with patch.object(StudioAPIClient, "health", new=health), patch.object(cli, "_author", new=author):
        assert asyncio.run(cli.run(args)) == []

    health.assert_awaited_once()
    client = author.await_args.args[1]
    assert isinstance(client, StudioAPIClient)
    assert client.base_url == "http://stories.local:9000"
