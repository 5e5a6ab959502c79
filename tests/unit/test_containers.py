"""Tests for the settings-driven wiring in the DI container."""

import boto3
import pytest
from dependency_injector import providers

from theme_installer.application.domain import CUSTOM_THEMES, QuotaState
from theme_installer.infrastructure.containers import (
    Container, build_durable_store, build_plan,
)
from theme_installer.infrastructure.storage import S3ObjectStore, UnavailableStore
from theme_installer.settings import load_settings


class TestBuildPlan:
    """The ``limits`` settings section becomes a plan snapshot."""

    def test_no_limits(self):
        assert not build_plan(None).quota_for(CUSTOM_THEMES).is_limited

    def test_allowlist_is_lower_cased(self):
        plan = build_plan(
            {
                "custom_themes": {
                    "enabled": True,
                    "allowlist": ["Casper", "EDITION"],
                    "max": 3,
                }
            }
        )
        quota = plan.quota_for(CUSTOM_THEMES)

        assert quota.is_limited
        assert quota.allowlist == frozenset({"casper", "edition"})
        assert quota.max_allowed == 3
        assert quota.upgrade_message == QuotaState.upgrade_message

    def test_disabled_section(self):
        plan = build_plan(
            {"custom_themes": {"enabled": False, "upgrade_message": "Call us."}}
        )
        quota = plan.quota_for(CUSTOM_THEMES)

        assert not quota.is_limited
        assert quota.allowlist is None
        assert quota.upgrade_message == "Call us."


class TestBuildDurableStore:
    """The backend is chosen once, from configuration."""

    @pytest.mark.parametrize("bucket, tenant_id", [("", "site-1"), ("themes", ""), (None, None)])
    def test_unconfigured(self, bucket, tenant_id):
        store = build_durable_store(bucket, tenant_id)
        assert isinstance(store, UnavailableStore)

    def test_configured(self):
        client = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )

        store = build_durable_store("themes", "site-1", client=client)

        assert isinstance(store, S3ObjectStore)
        assert store.bucket == "themes"
        assert store.client is client


class TestContainer:
    """The container builds a service from settings overrides."""

    def test_theme_service_wiring(self, tmp_path):
        container = Container()
        container.config.override(
            providers.Object(
                load_settings(
                    paths={
                        "content_dir": str(tmp_path / "content"),
                        "settings_file": str(tmp_path / "content" / "settings.json"),
                        "workspace_dir": str(tmp_path / "workspaces"),
                    },
                    storage={"bucket": "", "tenant_id": ""},
                )
            )
        )

        service = container.theme_service()

        assert isinstance(service.store, UnavailableStore)
        assert service.registry.themes_dir == tmp_path / "content" / "themes"
        assert service.registry.required_files == ("index.hbs", "post.hbs")
        assert service.trusted_organizations == frozenset({"tryghost"})
        assert not container.plan().quota_for(CUSTOM_THEMES).is_limited
