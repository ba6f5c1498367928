#!/usr/bin/env python3
"""
Keyledger 管理命令行工具

Operates directly on the configured database. The acting identity is
given with ``--as``; the operator running this tool vouches for it.
"""
import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from keyledger.core.errors import LedgerError
from keyledger.core.logging import setup_logging
from keyledger.models.records import ApiKey, Service
from keyledger.services.identity_service import identity_service
from keyledger.services.ledger import Ledger, build_store
from keyledger.utils.addressing import derive_api_key_address, derive_service_address


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyledger", description="Keyledger 管理工具")
    parser.add_argument("--database-url", help="資料庫連線字串 (預設讀取設定)")
    parser.add_argument("--log-level", default="WARNING", help="日誌等級")

    subparsers = parser.add_subparsers(dest="command", help="可用命令")

    subparsers.add_parser("init-db", help="建立資料表")

    init_parser = subparsers.add_parser("init-service", help="建立新的 Service")
    _add_identity(init_parser)
    init_parser.add_argument("--name", required=True, help="Service 名稱")
    init_parser.add_argument("--rate-limit", type=int, default=1000, help="預設每日請求上限")

    info_parser = subparsers.add_parser("service-info", help="顯示 Service 資訊")
    info_parser.add_argument("--authority", required=True, help="Service authority")

    create_parser = subparsers.add_parser("create-key", help="建立新的 API Key")
    _add_identity(create_parser)
    create_parser.add_argument("--authority", required=True, help="Service authority")
    create_parser.add_argument("--name", required=True, help="API Key 名稱")
    create_parser.add_argument("--scopes", nargs="*", default=["read"], help="權限範圍列表")
    create_parser.add_argument("--rate-limit", type=int, help="每日請求上限 (預設使用 Service 設定)")
    create_parser.add_argument("--expires-days", type=int, help="幾天後到期")

    key_info_parser = subparsers.add_parser("key-info", help="顯示 API Key 資訊")
    _add_key_target(key_info_parser)

    list_parser = subparsers.add_parser("list-keys", help="列出 Service 的 API Keys")
    list_parser.add_argument("--authority", required=True, help="Service authority")
    list_parser.add_argument("--active-only", action="store_true", help="僅顯示活躍的 keys")

    validate_parser = subparsers.add_parser("validate", help="驗證 API Key 權限範圍")
    _add_key_target(validate_parser)
    validate_parser.add_argument("--scope", required=True, help="需要的權限範圍")

    for command, help_text in (
        ("revoke", "停用 API Key"),
        ("reactivate", "重新啟用 API Key"),
        ("record-request", "記錄一次請求"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        _add_identity(sub)
        _add_key_target(sub)

    rate_parser = subparsers.add_parser("update-rate-limit", help="更新每日請求上限")
    _add_identity(rate_parser)
    _add_key_target(rate_parser)
    rate_parser.add_argument("--limit", type=int, required=True, help="新的每日請求上限")

    scopes_parser = subparsers.add_parser("update-scopes", help="更新權限範圍")
    _add_identity(scopes_parser)
    _add_key_target(scopes_parser)
    scopes_parser.add_argument("--scopes", nargs="*", required=True, help="新的權限範圍列表")

    expire_parser = subparsers.add_parser("extend-expiration", help="設定新的到期時間")
    _add_identity(expire_parser)
    _add_key_target(expire_parser)
    expire_parser.add_argument("--days", type=int, required=True, help="從現在起幾天後到期")

    token_parser = subparsers.add_parser("issue-token", help="簽發身分 token")
    _add_identity(token_parser)
    token_parser.add_argument("--minutes", type=int, help="token 有效分鐘數")

    return parser


def _add_identity(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--as", dest="identity", required=True, help="執行操作的身分")


def _add_key_target(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--key", help="API Key 位址")
    parser.add_argument("--authority", help="Service authority (與 --owner/--index 一起使用)")
    parser.add_argument("--owner", help="API Key owner")
    parser.add_argument("--index", type=int, help="API Key index")


def resolve_key_address(args: argparse.Namespace) -> str:
    """由 --key 或 (--authority, --owner, --index) 取得 API Key 位址"""
    if args.key:
        return args.key
    if args.authority and args.owner and args.index is not None:
        service_address = derive_service_address(args.authority)
        return derive_api_key_address(service_address, args.owner, args.index)
    raise SystemExit("❌ 請提供 --key 或 --authority/--owner/--index")


def print_service(service: Service) -> None:
    print(f"🔧 Service: {service.name}")
    print(f"  位址: {service.address}")
    print(f"  Authority: {service.authority}")
    print(f"  預設每日上限: {service.default_rate_limit}")
    print(f"  總 Key 數: {service.total_keys}")
    print(f"  活躍 Key 數: {service.active_keys}")


def print_key(api_key: ApiKey, remaining: Optional[int] = None) -> None:
    status = "✅ 活躍" if api_key.is_active else "❌ 停用"
    print(f"🔑 API Key: {api_key.name} (#{api_key.key_index})")
    print(f"  位址: {api_key.address}")
    print(f"  Owner: {api_key.owner}")
    print(f"  權限: {', '.join(api_key.scopes) or '(無)'}")
    print(f"  今日請求: {api_key.requests_today}/{api_key.rate_limit}")
    if remaining is not None:
        print(f"  今日剩餘: {remaining}")
    print(f"  總請求數: {api_key.total_requests}")
    print(f"  創建時間: {api_key.created_at.isoformat()}")
    print(f"  到期時間: {api_key.expires_at.isoformat() if api_key.expires_at else '永不過期'}")
    print(f"  狀態: {status}")


async def run_command(args: argparse.Namespace, ledger: Ledger) -> None:
    command = args.command

    if command == "init-db":
        print("✅ 資料表已建立")

    elif command == "init-service":
        service = await ledger.services.initialize(args.identity, args.name, args.rate_limit)
        print("✅ Service 建立成功!")
        print_service(service)

    elif command == "service-info":
        print_service(await ledger.services.get_service_by_authority(args.authority))

    elif command == "create-key":
        expires_at = None
        if args.expires_days:
            expires_at = datetime.now(timezone.utc) + timedelta(days=args.expires_days)
        api_key = await ledger.keys.create_key(
            service_address=derive_service_address(args.authority),
            owner=args.identity,
            name=args.name,
            scopes=args.scopes,
            rate_limit=args.rate_limit,
            expires_at=expires_at,
        )
        print("✅ API Key 建立成功!")
        print_key(api_key)

    elif command == "key-info":
        api_key = await ledger.keys.get_key(resolve_key_address(args))
        print_key(api_key, ledger.keys.remaining_today(api_key))

    elif command == "list-keys":
        keys = await ledger.keys.list_keys(
            derive_service_address(args.authority), active_only=args.active_only
        )
        if not keys:
            print("📭 沒有找到匹配的 API Keys")
            return
        print(f"🔑 API Keys 列表 {'(僅活躍)' if args.active_only else '(包括停用)'}")
        print("-" * 80)
        for api_key in keys:
            print_key(api_key, ledger.keys.remaining_today(api_key))
            print("-" * 40)

    elif command == "validate":
        await ledger.keys.validate_scope(resolve_key_address(args), args.scope)
        print(f"✅ 權限範圍 '{args.scope}' 驗證通過")

    elif command == "revoke":
        api_key = await ledger.keys.revoke_key(resolve_key_address(args), args.identity)
        print(f"✅ API Key '{api_key.name}' 已停用")

    elif command == "reactivate":
        api_key = await ledger.keys.reactivate_key(resolve_key_address(args), args.identity)
        print(f"✅ API Key '{api_key.name}' 已重新啟用")

    elif command == "record-request":
        api_key = await ledger.keys.record_request(resolve_key_address(args), args.identity)
        print(f"✅ 請求已記錄. 今日: {api_key.requests_today}/{api_key.rate_limit}")

    elif command == "update-rate-limit":
        api_key = await ledger.keys.update_rate_limit(resolve_key_address(args), args.identity, args.limit)
        print(f"✅ 每日上限已更新為 {api_key.rate_limit}")

    elif command == "update-scopes":
        api_key = await ledger.keys.update_scopes(resolve_key_address(args), args.identity, args.scopes)
        print(f"✅ 權限範圍已更新: {', '.join(api_key.scopes) or '(無)'}")

    elif command == "extend-expiration":
        new_expiry = datetime.now(timezone.utc) + timedelta(days=args.days)
        api_key = await ledger.keys.extend_expiration(resolve_key_address(args), args.identity, new_expiry)
        print(f"✅ 到期時間已設定為 {api_key.expires_at.isoformat()}")


async def _main(args: argparse.Namespace) -> None:
    ledger = Ledger(build_store("sql", args.database_url))
    await ledger.start()
    try:
        await run_command(args, ledger)
    finally:
        await ledger.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.log_level)

    if args.command == "issue-token":
        expires = timedelta(minutes=args.minutes) if args.minutes else None
        print(identity_service.create_access_token(args.identity, expires))
        return 0

    try:
        asyncio.run(_main(args))
    except LedgerError as e:
        print(f"❌ 錯誤 [{e.kind.value}]: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
