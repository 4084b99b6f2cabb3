"""Shared fixtures for the pipeline tests."""

import pytest

from pipeline.config import PipelineConfig


@pytest.fixture
def config(tmp_path):
    return PipelineConfig(
        input_csv=str(tmp_path / "purchases.csv"),
        registry_path=str(tmp_path / "data" / "scraped-codes.json"),
        checkpoint_path=str(tmp_path / "data" / "checkpoint.json"),
        results_dir=str(tmp_path / "data" / "results"),
        downloads_dir=str(tmp_path / "downloads"),
        manifest_path=str(tmp_path / "data" / "download-manifest.json"),
        batch_dir=str(tmp_path / "data"),
        logs_dir=str(tmp_path / "logs"),
        jitter_min=0.0,
        jitter_max=0.0,
        checkpoint_every=2,
    )
