"""Tests for service name resolution from config.v2.json."""

import json

from docker_log_forwarder.models import ContainerLogSource
from docker_log_forwarder.service_name import resolve_service_name


class TestResolveServiceName:
    def test_name_without_leading_slash(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        (cdir / "config.v2.json").write_text(json.dumps({"Name": "/billing-api", "Id": "abc123"}))
        assert resolve_service_name(str(cdir)) == "billing-api"

    def test_missing_file_falls_back_to_id(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        assert resolve_service_name(str(cdir)) == "abc123"

    def test_invalid_json_falls_back_to_id(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        (cdir / "config.v2.json").write_text("{broken")
        assert resolve_service_name(str(cdir)) == "abc123"

    def test_missing_name_field_falls_back_to_id(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        (cdir / "config.v2.json").write_text(json.dumps({"Id": "abc123"}))
        assert resolve_service_name(str(cdir)) == "abc123"

    def test_empty_name_falls_back_to_id(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        (cdir / "config.v2.json").write_text(json.dumps({"Name": "/"}))
        assert resolve_service_name(str(cdir)) == "abc123"


class TestContainerLogSource:
    def test_paths(self, tmp_path):
        source = ContainerLogSource(str(tmp_path / "abc123"))
        assert source.container_id == "abc123"
        assert source.log_file_path == str(tmp_path / "abc123" / "abc123-json.log")
        assert source.config_path == str(tmp_path / "abc123" / "config.v2.json")
        assert source.log_file_name == "abc123-json.log"

    def test_service_name_resolved_once(self, tmp_path):
        calls = []

        def resolver(container_dir):
            calls.append(container_dir)
            return "svc"

        source = ContainerLogSource(str(tmp_path / "abc123"), resolver)
        assert source.service_name == "svc"
        assert source.service_name == "svc"
        assert len(calls) == 1

    def test_not_re_resolved_after_metadata_changes(self, tmp_path):
        cdir = tmp_path / "abc123"
        cdir.mkdir()
        config = cdir / "config.v2.json"
        config.write_text(json.dumps({"Name": "/first"}))
        source = ContainerLogSource(str(cdir))
        assert source.service_name == "first"

        config.write_text(json.dumps({"Name": "/second"}))
        assert source.service_name == "first"
