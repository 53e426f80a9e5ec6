import pytest


@pytest.fixture(autouse=True)
def _audit_to_tmp(tmp_path, monkeypatch):
    # keep match audit logs out of the working tree
    monkeypatch.setenv("GRIDSTRIKE_LOG_DIR", str(tmp_path / "logs"))
