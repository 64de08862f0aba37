from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config.loader import ConfigError, load_config, load_module_catalog
from ..excel.export import export_report
from ..excel.reader import SheetHeaderError, WorkbookReadError, find_header_row, read_workbook_grid
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.analytics import ModuleAnalytics
from ..models.config_models import SOURCE_API, DashboardConfig, DatabaseConfig, ModuleConfig, RecordFilters
from ..models.load_result import LoadErrorType, LoadResult
from ..services.module_session import ModuleSession
from ..services.orchestrator import ProcessingError, process_uploads, scan_excel_files, write_payload
from ..services.record_loader import MSG_FETCH_FAILED, load_from_source, load_from_workbook
from ..services.summary import render_summary_line

"""CLI entrypoint.

Batch mode (default): process every routed workbook in ``source_directory``,
write one JSON payload per file and print the SUMMARY line.

Single-module mode (``--module``): load one module from an uploaded workbook
(``--file``) or from the record source (``--from-db``) and print or write its
payload; ``--export`` also writes the report workbook.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

DEFAULT_CONFIG_PATH = Path("config/dashboard.yml")


@contextmanager
def _db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 cursor for the record source.

    接続情報の解決優先順位:
        1. `.env` で読み込まれた環境変数 (main() 冒頭で上書き読込済み)
        2. プロセスの環境変数
             - DATABASE_URL / PGDSN があれば DSN 全体をそのまま使用
             - 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. 設定ファイルの database セクション (不足分のフォールバック)
    """
    import psycopg2

    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    try:
        conn.set_session(readonly=True)
        cur = conn.cursor()
        try:
            yield cur
        finally:
            cur.close()
        conn.rollback()
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv (override=True: .env wins over the process environment)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="esg-analytics", description="ESG dashboard analytics (record normalization & aggregation)")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Dashboard config YAML")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print located header rows & first data rows then exit")
    p.add_argument("--list-modules", action="store_true", help="List configured modules then exit")
    p.add_argument("--module", help="Load a single module")
    src = p.add_mutually_exclusive_group()
    src.add_argument("--file", type=Path, help="Workbook to load (file-sourced module)")
    src.add_argument("--from-db", action="store_true", help="Load from the record source (API-sourced module)")
    p.add_argument("--year", help="Financial year filter ('All' clears)")
    p.add_argument("--month", help="Month filter")
    p.add_argument("--business-code", help="Business code filter")
    p.add_argument("--plant", help="Plant filter")
    p.add_argument("--department", help="Department filter")
    p.add_argument("--output", type=Path, help="Write the module payload JSON here instead of stdout")
    p.add_argument("--export", type=Path, help="Write the module report workbook (.xlsx)")
    return p.parse_args(argv)


def _list_modules(modules: dict[str, ModuleConfig]) -> int:
    for name, m in modules.items():
        views = ", ".join(v.name for v in m.views)
        print(f"{name}\t{m.source}\t{m.title}\t[{views}]")
    return EXIT_SUCCESS_ALL


def _inspect_data(cfg: DashboardConfig) -> int:
    directory = Path(cfg.source_directory)
    try:
        files = scan_excel_files(directory)
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in files:
        module_name = cfg.module_for(f.name)
        print(f"FILE: {f.name} module={module_name or '-'}")
        if module_name is None:
            continue
        module = cfg.modules[module_name]
        try:
            grid = read_workbook_grid(f)
            idx = find_header_row(grid, module.header, module.required_labels)
        except (WorkbookReadError, SheetHeaderError) as e:
            print(f"  error={e}")
            continue
        print(f"  header_row={idx + 1} header={grid[idx]}")
        # 日付セルは repr だと読みにくいので isoformat
        for row in grid[idx + 1:idx + 4]:
            print("    sample_row=", [v.isoformat() if hasattr(v, "isoformat") else v for v in row])
    return EXIT_SUCCESS_ALL


def _emit(analytics: ModuleAnalytics, output: Path | None, export: Path | None) -> None:
    if output is not None:
        write_payload(analytics, output)
    else:
        print(json.dumps(analytics.to_dict(), ensure_ascii=False, indent=2))
    if export is not None:
        export_report(analytics, export)


def _run_module(args: argparse.Namespace, cfg: DashboardConfig | None, modules: dict[str, ModuleConfig], logger: Any) -> int:
    module = modules.get(args.module)
    if module is None:
        logger.error(f"unknown module: {args.module}")
        return EXIT_FATAL

    if args.file is not None:
        if not args.file.exists():
            logger.error(f"file not found: {args.file}")
            return EXIT_FATAL

        def loader() -> LoadResult:
            return load_from_workbook(args.file, module)
    elif args.from_db or module.source == SOURCE_API:
        filters = (cfg.filters if cfg is not None else RecordFilters()).merged(
            year=args.year,
            month=args.month,
            business_code=args.business_code,
            plant=args.plant,
            department=args.department,
        )
        db_cfg = cfg.database if cfg is not None else DatabaseConfig()

        def loader() -> LoadResult:
            try:
                with _db_connection(db_cfg) as cur:
                    return load_from_source(cur, module, filters, db_cfg.table)
            except Exception as e:  # 接続失敗 (psycopg2.OperationalError 等)
                logger.error(f"record source connection failed: {e}")
                return LoadResult.failure(LoadErrorType.FETCH_FAILED, MSG_FETCH_FAILED)
    else:
        logger.error(f"module '{module.name}' is file-sourced: --file is required")
        return EXIT_FATAL

    session = ModuleSession(module)
    analytics = session.refresh(loader)
    _emit(analytics, args.output, args.export)
    if analytics.error_type is not None:
        logger.error(f"module={module.name} {analytics.error_type.value}: {analytics.message}")
        return EXIT_PARTIAL_FAILURE
    logger.info(f"module={module.name} records={analytics.record_count}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: [] が渡された場合に sys.argv[1:] (pytest の引数) を拾わないよう None のときのみ参照
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    # --module / --list-modules は設定ファイルなしでも組込みカタログで動く
    cfg: DashboardConfig | None = None
    try:
        if args.config.exists() or not (args.module or args.list_modules):
            cfg = load_config(args.config)
            modules = dict(cfg.modules)
        else:
            modules = load_module_catalog()
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.list_modules:
        return _list_modules(modules)
    if args.module:
        return _run_module(args, cfg, modules, logger)
    if cfg is None:
        logger.error(f"config not found: {args.config}")
        return EXIT_FATAL

    directory = Path(cfg.source_directory)
    if not directory.exists():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg)

    logger.info(f"Processing files from: {directory}")
    try:
        result = process_uploads(cfg)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    total_files = result.success_files + result.failed_files
    summary_line = render_summary_line(total_files, result)
    # log_summary が "SUMMARY " を付けるので除去
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
