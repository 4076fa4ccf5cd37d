#!/usr/bin/env python3
"""
Asset Metadata CLI

Command-line tool to inspect and reconcile asset records from the server terminal.

Usage:
    python asset_cli.py init-db
    python asset_cli.py profile <stable_id> [--local-only]
    python asset_cli.py onboard <stable_id>
    python asset_cli.py onboard-symbol <symbol> [--crypto]
    python asset_cli.py refresh <stable_id>
    python asset_cli.py search <query> [--crypto] [--local-only]
    python asset_cli.py providers
"""
import sys
import argparse
import asyncio
from pathlib import Path

# Add project root to path (file is in root)
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from yieldsync.app.config import get_settings
from yieldsync.app.db.models import AssetKind
from yieldsync.app.db.session import ensure_database_exists
from yieldsync.app.logging_config import configure_logging
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.schemas.reconcile import FAReconcileResult
from yieldsync.app.services.asset_search import filter_supported_venues
from yieldsync.app.services.errors import AssetServiceError
from yieldsync.app.services.provider_registry import AssetProviderRegistry
from yieldsync.app.services.service_factory import build_asset_services


def _print_profile(profile: FAProfile, indent: str = "  "):
    refreshed = profile.last_refreshed_at.isoformat() if profile.last_refreshed_at else "never"
    print(f"{indent}{profile.symbol:<8} {profile.stable_id:<14} {profile.name or '-'}")
    print(f"{indent}         venue={profile.venue or '-'} sector={profile.sector or '-'} "
          f"industry={profile.industry or '-'} refreshed={refreshed}")


def _print_error(e: AssetServiceError):
    hint = " (retryable)" if e.retryable else ""
    print(f"❌ [{e.error_code}] {e.message}{hint}")


def _print_onboarded(result: FAReconcileResult):
    print(f"✅ Asset {result.record.stable_id} onboarded")
    _print_profile(result.record)
    for warning in result.warnings:
        print(f"⚠️  {warning}")


def cmd_init_db():
    """Create/migrate the database."""
    migrated = ensure_database_exists()
    print("✅ Database migrated" if migrated else "✅ Database already initialized")
    return True


async def cmd_profile(stable_id: str, local_only: bool):
    """Show an asset profile (onboarding or refreshing it when needed)."""
    services = build_asset_services()
    try:
        response = await services.reconciliation.resolve_profile(stable_id, allow_external=not local_only)
    except AssetServiceError as e:
        _print_error(e)
        return False

    if response.processed_unknown_asset:
        print("ℹ️  New asset onboarded")
    if response.refresh_performed:
        print("ℹ️  Stale asset refreshed")
    _print_profile(response.asset)
    for warning in response.warnings:
        print(f"⚠️  {warning}")
    return True


async def cmd_onboard(stable_id: str):
    """Onboard a new asset by stable identifier."""
    services = build_asset_services()
    try:
        result = await services.reconciliation.process_new_asset(stable_id)
    except AssetServiceError as e:
        _print_error(e)
        return False

    _print_onboarded(result)
    return True


async def cmd_onboard_symbol(symbol: str, crypto: bool):
    """Onboard a new asset from its current trading symbol."""
    services = build_asset_services()
    kind = AssetKind.DIGITAL_ASSET if crypto else AssetKind.EQUITY
    try:
        result = await services.reconciliation.process_new_asset_by_symbol(symbol, kind=kind)
    except AssetServiceError as e:
        _print_error(e)
        return False

    _print_onboarded(result)
    return True


async def cmd_refresh(stable_id: str):
    """Force a refresh of a stored asset."""
    services = build_asset_services()
    try:
        result = await services.reconciliation.refresh_by_id(stable_id)
    except AssetServiceError as e:
        _print_error(e)
        return False

    if result.symbol_changed:
        print(f"✅ Symbol changed: {result.previous_symbol} -> {result.record.symbol}")
    else:
        print("✅ Asset refreshed")
    _print_profile(result.record)
    for displaced in result.displaced:
        status = "re-identified" if displaced.resolved else "left unknown"
        print(f"  ↪ {displaced.stable_id}: {displaced.previous_symbol} -> {displaced.new_symbol} ({status})")
    for warning in result.warnings:
        print(f"⚠️  {warning}")
    return True


async def cmd_search(query: str, crypto: bool, local_only: bool):
    """Search assets locally, augmented by the provider when the query is stale."""
    services = build_asset_services()
    kind = AssetKind.DIGITAL_ASSET if crypto else AssetKind.EQUITY
    try:
        response = await services.search.search(query, kind=kind, allow_external=not local_only)
    except AssetServiceError as e:
        _print_error(e)
        return False

    print(f"\nQuery: {response.query}  ({len(response.matches)} matches)")
    for profile in response.matches:
        _print_profile(profile)
    if response.external_lookup_performed:
        external = response.external_results
        if kind == AssetKind.EQUITY:
            # Listings outside the supported exchanges are not offered to the user
            external = filter_supported_venues(external, get_settings().SUPPORTED_STOCK_EXCHANGES)
        print(f"\nExternal results: {len(external)}")
        if len(external) != len(response.external_results):
            print(f"ℹ️  {len(response.external_results) - len(external)} result(s) on unsupported venues hidden")
        for profile in external:
            _print_profile(profile)
    if response.external_error:
        print(f"⚠️  External lookup failed: {response.external_error}")
    return True


def cmd_providers():
    """List registered providers."""
    for provider in AssetProviderRegistry.list_providers():
        print(f"  {provider['code']:<12} {provider['kind']:<14} {provider['name']}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="YieldSync Asset Metadata CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python asset_cli.py init-db
  python asset_cli.py profile US0378331005
  python asset_cli.py onboard-symbol AAPL
  python asset_cli.py search aapl
  python asset_cli.py search bitcoin --crypto
  python asset_cli.py refresh US0378331005
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-db
    subparsers.add_parser("init-db", help="Create or migrate the database")

    # profile
    profile_parser = subparsers.add_parser("profile", help="Show asset profile by stable id")
    profile_parser.add_argument("stable_id", help="ISIN or coin id")
    profile_parser.add_argument("--local-only", action="store_true", help="Do not contact providers")

    # onboard
    onboard_parser = subparsers.add_parser("onboard", help="Onboard a new asset")
    onboard_parser.add_argument("stable_id", help="ISIN or coin id")

    # onboard-symbol
    onboard_symbol_parser = subparsers.add_parser("onboard-symbol", help="Onboard a new asset by trading symbol")
    onboard_symbol_parser.add_argument("symbol", help="Current trading symbol")
    onboard_symbol_parser.add_argument("--crypto", action="store_true", help="Symbol of a digital asset")

    # refresh
    refresh_parser = subparsers.add_parser("refresh", help="Refresh a stored asset now")
    refresh_parser.add_argument("stable_id", help="ISIN or coin id")

    # search
    search_parser = subparsers.add_parser("search", help="Search assets")
    search_parser.add_argument("query", help="Symbol or text")
    search_parser.add_argument("--crypto", action="store_true", help="Search digital assets")
    search_parser.add_argument("--local-only", action="store_true", help="Do not contact providers")

    # providers
    subparsers.add_parser("providers", help="List registered providers")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    settings = get_settings()
    configure_logging(
        settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        enable_file_logging=settings.LOG_FILE_ENABLED,
        log_dir=settings.LOG_DIR,
        )

    if args.command == "init-db":
        ok = cmd_init_db()
    elif args.command == "profile":
        ok = asyncio.run(cmd_profile(args.stable_id, args.local_only))
    elif args.command == "onboard":
        ok = asyncio.run(cmd_onboard(args.stable_id))
    elif args.command == "onboard-symbol":
        ok = asyncio.run(cmd_onboard_symbol(args.symbol, args.crypto))
    elif args.command == "refresh":
        ok = asyncio.run(cmd_refresh(args.stable_id))
    elif args.command == "search":
        ok = asyncio.run(cmd_search(args.query, args.crypto, args.local_only))
    else:
        ok = cmd_providers()

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
