"""CLI entry point for receipt-calendar."""

from __future__ import annotations

import argparse
import asyncio
import calendar
import json
import logging
import sys
from datetime import date

from dotenv import load_dotenv

from .config import load_config
from .controller import create_controller
from .errors import ReceiptCalendarError
from .models import Category, ExpenseRecord, parse_day
from .projections import marked_days, total_on


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="receipt-calendar",
        description="AI領収書カレンダー: 領収書を撮影して日々の経費を記録します",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="設定ファイルのパス (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="詳細なログを表示"
    )

    sub = parser.add_subparsers(dest="command")

    categories = [c.value for c in Category]

    # scan
    scan_parser = sub.add_parser("scan", help="領収書画像から経費を読み取る")
    scan_parser.add_argument("image", type=str, help="領収書の画像ファイル")
    scan_parser.add_argument("--save", action="store_true", help="読み取った内容で保存")
    scan_parser.add_argument("--amount", type=str, default=None, help="金額を上書き")
    scan_parser.add_argument("--shop", type=str, default=None, help="店名を上書き")
    scan_parser.add_argument(
        "--category", type=str, default=None, choices=categories, help="カテゴリを上書き"
    )
    scan_parser.add_argument("--json", action="store_true", help="JSON形式で出力")

    # add
    add_parser = sub.add_parser("add", help="経費を手動で追加")
    add_parser.add_argument("--amount", type=str, required=True, help="金額 (円)")
    add_parser.add_argument("--shop", type=str, default="", help="店名")
    add_parser.add_argument(
        "--category", type=str, default=Category.FOOD.value, choices=categories
    )
    add_parser.add_argument("--date", type=str, default=None, help="日付 (YYYY-MM-DD)")

    # list
    list_parser = sub.add_parser("list", help="選択した日の履歴を表示")
    list_parser.add_argument("--date", type=str, default=None, help="日付 (YYYY-MM-DD)")
    list_parser.add_argument("--json", action="store_true", help="JSON形式で出力")

    # calendar
    cal_parser = sub.add_parser("calendar", help="記録のある日をカレンダー表示")
    cal_parser.add_argument("--month", type=str, default=None, help="対象月 (YYYY-MM)")

    # delete
    del_parser = sub.add_parser("delete", help="経費を削除")
    del_parser.add_argument("id", type=str, help="経費ID")
    del_parser.add_argument("--yes", "-y", action="store_true", help="確認せずに削除")

    # serve
    serve_parser = sub.add_parser("serve", help="レシート解析サービスを起動")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    # logout
    sub.add_parser("logout", help="この端末の匿名セッションを破棄")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    try:
        match args.command:
            case "scan":
                asyncio.run(_cmd_scan(config, args))
            case "add":
                asyncio.run(_cmd_add(config, args))
            case "list":
                asyncio.run(_cmd_list(config, args))
            case "calendar":
                asyncio.run(_cmd_calendar(config, args))
            case "delete":
                asyncio.run(_cmd_delete(config, args))
            case "serve":
                _cmd_serve(config, args)
            case "logout":
                asyncio.run(_cmd_logout(config))
    except ReceiptCalendarError as e:
        print(f"エラー: {e}", file=sys.stderr)
        sys.exit(1)


def _parse_date_arg(value: str | None) -> date:
    if value is None:
        return date.today()
    day = parse_day(value)
    if day is None:
        print(f"日付の形式が不正です: {value} (YYYY-MM-DD)", file=sys.stderr)
        sys.exit(2)
    return day


def _record_to_dict(record: ExpenseRecord) -> dict:
    return {
        "id": record.id,
        "date": record.date.isoformat(),
        "amount": record.amount,
        "shop_name": record.shop_name,
        "category": record.category.value,
        "created_at": record.created_at,
    }


def _print_records(records: list[ExpenseRecord], day: date) -> None:
    print(f"📅 {day:%Y年%m月%d日} の履歴")
    if not records:
        print("  記録なし")
        return
    for r in records:
        shop = r.shop_name or "(店名なし)"
        print(f"  {shop:<16} {r.category.value} / {r.amount:,}円  [{r.id}]")
    print(f"  合計: {total_on(records, day):,}円")


async def _cmd_scan(config, args) -> None:
    async with create_controller(config) as controller:
        print("✨ AI解析中...")
        result = await controller.extract_file(args.image)

        edits = {}
        if args.amount is not None:
            edits["amount"] = args.amount
        if args.shop is not None:
            edits["shop_name"] = args.shop
        if args.category is not None:
            edits["category"] = args.category
        if edits:
            controller.update_draft(**edits)

        draft = controller.draft
        day = controller.selected_date.effective_date()

        if args.json:
            data = {
                "date": day.isoformat(),
                "extracted_date": result.date.isoformat() if result.date else None,
                "amount": draft.amount,
                "shop_name": draft.shop_name,
                "category": draft.category.value,
            }
            print(json.dumps(data, ensure_ascii=False, indent=2))
        else:
            amount = f"{draft.amount:,}円" if draft.amount is not None else "(未入力)"
            print("\n🧾 読み取り結果")
            print(f"  日付:     {day:%Y年%m月%d日}")
            print(f"  金額:     {amount}")
            print(f"  店名:     {draft.shop_name or '(なし)'}")
            print(f"  カテゴリ: {draft.category.value}")

        if args.save:
            await controller.save()
            print("💾 保存しました")
            _print_records(controller.records_on(day), day)


async def _cmd_add(config, args) -> None:
    async with create_controller(config) as controller:
        day = _parse_date_arg(args.date)
        controller.select_date(day)
        controller.update_draft(
            amount=args.amount, shop_name=args.shop, category=args.category
        )
        await controller.save()
        print("💾 保存しました")
        _print_records(controller.records_on(day), day)


async def _cmd_list(config, args) -> None:
    async with create_controller(config) as controller:
        day = _parse_date_arg(args.date)
        records = controller.records_on(day)
        if args.json:
            print(
                json.dumps(
                    [_record_to_dict(r) for r in records], ensure_ascii=False, indent=2
                )
            )
        else:
            _print_records(records, day)


async def _cmd_calendar(config, args) -> None:
    if args.month:
        try:
            year, month = (int(p) for p in args.month.split("-", 1))
            date(year, month, 1)
        except ValueError:
            print(f"月の形式が不正です: {args.month} (YYYY-MM)", file=sys.stderr)
            sys.exit(2)
    else:
        today = date.today()
        year, month = today.year, today.month

    async with create_controller(config) as controller:
        marked = marked_days(controller.records, year, month)

    print(f"{year}年{month}月")
    print(" 月  火  水  木  金  土  日")
    for week in calendar.Calendar(firstweekday=0).monthdayscalendar(year, month):
        cells = []
        for d in week:
            if d == 0:
                cells.append("    ")
            else:
                mark = "*" if date(year, month, d) in marked else " "
                cells.append(f"{d:>2}{mark} ")
        print("".join(cells).rstrip())
    print(f"\n* 記録のある日: {len(marked)} 日")


async def _cmd_delete(config, args) -> None:
    def confirm(record: ExpenseRecord | None) -> bool:
        if args.yes:
            return True
        if record is None:
            print(f"経費 {args.id} は一覧にありません。", file=sys.stderr)
            return False
        answer = input(
            f"{record.date} {record.shop_name} {record.amount:,}円 を削除しますか? [y/N] "
        )
        return answer.strip().lower() in ("y", "yes")

    async with create_controller(config) as controller:
        deleted = await controller.delete(args.id, confirm=confirm)
        print("🗑  削除しました" if deleted else "削除を中止しました")


def _cmd_serve(config, args) -> None:
    try:
        import uvicorn
    except ImportError:
        raise ImportError("uvicorn is required: pip install uvicorn") from None

    from .service import create_app
    from .vision import create_backend

    app = create_app(create_backend(config))
    uvicorn.run(
        app,
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


async def _cmd_logout(config) -> None:
    from .db import LocalIdentityProvider

    identity = LocalIdentityProvider(db_path=config.storage.db_path)
    try:
        await identity.sign_out()
    finally:
        identity.close()
    print("匿名セッションを破棄しました")
