"""
Unit tests for manifest parsing and patching helpers.
"""

import pytest
import yaml

from smarthome_api.services.kubernetes.helpers import (
    config_map_name,
    get_resource_name,
    inject_image_pull_secret,
    mfe_resource_name,
    render_template,
    split_manifest,
)


@pytest.mark.unit
class TestSplitManifest:

    def test_multiple_documents(self):
        documents = split_manifest("kind: Deployment\nmetadata:\n  name: a\n---\nkind: Service\nmetadata:\n  name: b\n")

        assert [d["kind"] for d in documents] == ["Deployment", "Service"]

    def test_blank_documents_dropped(self):
        documents = split_manifest("---\n---\n# only a comment\n---\nkind: ConfigMap\n---\n")

        assert documents == [{"kind": "ConfigMap"}]

    def test_non_mapping_documents_dropped(self):
        documents = split_manifest("- a\n- b\n---\nkind: Service\n---\njust a string\n")

        assert documents == [{"kind": "Service"}]

    def test_invalid_yaml_raises(self):
        with pytest.raises(yaml.YAMLError):
            split_manifest("kind: [unclosed\n")


@pytest.mark.unit
class TestResourceNames:

    def test_get_resource_name(self):
        assert get_resource_name({"metadata": {"name": "lights"}}) == "lights"

    def test_get_resource_name_missing(self):
        with pytest.raises(ValueError):
            get_resource_name({"kind": "Service", "metadata": {}})

    def test_derived_names(self):
        assert config_map_name("lights") == "lights-config"
        assert mfe_resource_name("lights") == "lights-mfe"


@pytest.mark.unit
class TestInjectImagePullSecret:

    def test_creates_path(self):
        deployment = {"kind": "Deployment"}

        assert inject_image_pull_secret(deployment, "ghcr-pull") is True
        assert deployment["spec"]["template"]["spec"]["imagePullSecrets"] == [{"name": "ghcr-pull"}]

    def test_keeps_other_secrets(self):
        deployment = {"spec": {"template": {"spec": {"imagePullSecrets": [{"name": "dockerhub"}]}}}}

        assert inject_image_pull_secret(deployment, "ghcr-pull") is True
        assert deployment["spec"]["template"]["spec"]["imagePullSecrets"] == [
            {"name": "dockerhub"},
            {"name": "ghcr-pull"},
        ]

    def test_idempotent(self):
        deployment = {}
        inject_image_pull_secret(deployment, "ghcr-pull")

        assert inject_image_pull_secret(deployment, "ghcr-pull") is False
        assert len(deployment["spec"]["template"]["spec"]["imagePullSecrets"]) == 1


@pytest.mark.unit
class TestRenderTemplate:

    def test_replaces_every_occurrence(self):
        rendered = render_template("a={{ip}} b={{ip}} c={{port}}", {"ip": "10.0.0.5", "port": "80"})

        assert rendered == "a=10.0.0.5 b=10.0.0.5 c=80"

    def test_unmatched_placeholders_left_verbatim(self):
        assert render_template("{{known}} {{unknown}}", {"known": "x"}) == "x {{unknown}}"

    def test_no_values(self):
        assert render_template("host: {{host}}", None) == "host: {{host}}"

    def test_spaced_placeholder_not_matched(self):
        assert render_template("{{ host }}", {"host": "x"}) == "{{ host }}"
