"""
Asset CLI Tests

Runs the CLI command functions against the test database and the mock
providers (build_asset_services is swapped for the fixture-backed services).
"""
import pytest

import asset_cli
from yieldsync.app.config import Settings
from yieldsync.app.db.models import AssetKind
from yieldsync.app.services.service_factory import build_asset_services
from yieldsync.test_scripts.test_utils import make_isin


@pytest.fixture
def cli_services(monkeypatch, session_factory, providers):
    services = build_asset_services(Settings(), session_factory=session_factory, providers=providers)
    monkeypatch.setattr(asset_cli, "build_asset_services", lambda: services)
    return services


@pytest.mark.asyncio
async def test_search_hides_unsupported_venues(cli_services, equity_provider, capsys):
    equity_provider.set_profile(make_isin(1), "QQA", venue="NASDAQ")
    equity_provider.set_profile(make_isin(2), "QQB", venue="NYSE")
    equity_provider.set_profile(make_isin(3), "QQC", venue="OTC")

    assert await asset_cli.cmd_search("qq", crypto=False, local_only=False)

    output = capsys.readouterr().out
    external_section = output.split("External results:", 1)[1]
    assert external_section.startswith(" 2")
    assert "1 result(s) on unsupported venues hidden" in output
    assert "QQA" in external_section and "QQB" in external_section
    assert "QQC" not in external_section


@pytest.mark.asyncio
async def test_search_crypto_not_venue_filtered(cli_services, crypto_provider, capsys):
    crypto_provider.set_profile("ethereum", "ETH", name="Ethereum", venue="ethereum")

    assert await asset_cli.cmd_search("eth", crypto=True, local_only=False)

    output = capsys.readouterr().out
    assert "External results: 1" in output
    assert "hidden" not in output


@pytest.mark.asyncio
async def test_onboard_symbol(cli_services, equity_provider, capsys):
    equity_provider.set_profile(make_isin(1), "NEWCO", name="New Company")

    assert await asset_cli.cmd_onboard_symbol("NEWCO", crypto=False)

    output = capsys.readouterr().out
    assert f"Asset {make_isin(1)} onboarded" in output
    stored = await cli_services.store.get(make_isin(1))
    assert stored.symbol == "NEWCO"
    assert stored.kind == AssetKind.EQUITY


@pytest.mark.asyncio
async def test_onboard_symbol_not_found(cli_services, capsys):
    assert not await asset_cli.cmd_onboard_symbol("NOPE", crypto=False)
    assert "❌" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
