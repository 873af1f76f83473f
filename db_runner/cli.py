"""
DB Runner CLI 工具
==================

基于分组配置文件执行SQL的命令行界面。

功能特性:
- 查看配置分组及连接池配置
- 测试分组对应的数据库连接
- 执行带命名参数的查询，结果以表格、JSON或CSV输出
- 在事务中执行更新语句
- 生成示例配置文件

使用示例:
    db-runner init config/db.toml --group dev --url sqlite:///dev.db
    db-runner groups
    db-runner query dev "SELECT * FROM users WHERE id = :id" -p id=1
    db-runner execute dev "UPDATE users SET name = :name WHERE id = :id" -p name=bob -p id=1
"""

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from .core.config import DEFAULT_GROUP, GroupedConfig, PoolConfigLoader, PoolDescriptor
from .core.exceptions import DBRunnerError
from .core.handlers import dict_rows
from .core.session import TransactionalSession
from .drivers.sqlalchemy_driver import PooledDataSource, build_url
from .utils.logging_utils import VALID_LOG_LEVELS, get_logger, setup_logging

logger = get_logger(__name__)

OUTPUT_FORMATS = ["table", "json", "csv"]

# 表格显示的最大列宽
MAX_COL_WIDTH = 50


class DBRunnerCLI:
    """
    DB Runner 命令行接口主类

    Attributes:
        config_path (Optional[str]): 配置文件路径，为 None 时从默认位置查找
        console (Console): rich 控制台
    """

    def __init__(self, config_path: Optional[str] = None, console: Optional[Console] = None):
        self.config_path = config_path
        self.console = console or Console()
        self._config: Optional[GroupedConfig] = None

    def _fail(self, message: str) -> None:
        logger.error(message)
        self.console.print(f"❌ {message}", markup=False)
        sys.exit(1)

    def _load_config(self) -> GroupedConfig:
        if self._config is None:
            if self.config_path:
                self._config = GroupedConfig.from_file(self.config_path)
            else:
                self._config = GroupedConfig.load_default()
        return self._config

    def _load_descriptor(self, group: str) -> PoolDescriptor:
        return PoolConfigLoader(self._load_config()).load(group)

    @staticmethod
    def _display_group(group: str) -> str:
        return group if group else "(默认)"

    # ------------------------------------------------------------------ 命令

    def list_groups(self, _args: argparse.Namespace) -> None:
        """列出配置文件中的全部分组"""
        try:
            config = self._load_config()
        except DBRunnerError as e:
            self._fail(f"加载配置失败: {e}")
            return

        groups = config.groups()
        if not groups:
            self.console.print("📭 配置文件中没有分组")
            return

        table = Table(title=f"📋 配置分组 ({config.source})", show_header=True, header_style="bold magenta")
        table.add_column("序号", style="cyan", justify="center")
        table.add_column("分组", style="magenta")
        table.add_column("URL", style="green")
        for index, group in enumerate(groups, 1):
            settings = config.get_group(group)
            url = settings.get("url") or settings.get("jdbcUrl") or ""
            table.add_row(str(index), self._display_group(group), str(url))
        self.console.print(table)

    def show_group(self, args: argparse.Namespace) -> None:
        """显示分组解析后的连接池配置"""
        try:
            descriptor = self._load_descriptor(args.group)
            url = build_url(descriptor).render_as_string(hide_password=True)
        except DBRunnerError as e:
            self._fail(f"加载分组配置失败: {e}")
            return

        table = Table(
            title=f"🔗 分组 {self._display_group(args.group)}", show_header=True, header_style="bold magenta"
        )
        table.add_column("配置项", style="cyan")
        table.add_column("值", style="green")
        table.add_row("url", url)
        table.add_row("user", descriptor.user or "")
        table.add_row("password", "******" if descriptor.password else "")
        table.add_row("driver", descriptor.driver)
        table.add_row("initialSize", str(descriptor.initial_size))
        table.add_row("minIdle", str(descriptor.min_idle))
        table.add_row("maxActive", str(descriptor.max_active))
        table.add_row("maxWait", f"{descriptor.max_wait}ms")
        table.add_row("showSql", str(descriptor.sql_log.show_sql))
        table.add_row("formatSql", str(descriptor.sql_log.format_sql))
        table.add_row("showParams", str(descriptor.sql_log.show_params))
        for key, value in descriptor.properties.items():
            table.add_row(key, str(value))
        self.console.print(table)

    def test_connection(self, args: argparse.Namespace) -> None:
        """测试分组对应的数据库连接"""
        try:
            descriptor = self._load_descriptor(args.group)
            with PooledDataSource(descriptor) as data_source:
                success = data_source.test_connection()
        except DBRunnerError as e:
            self._fail(f"连接测试失败: {e}")
            return

        if success:
            self.console.print(f"✅ 分组 {self._display_group(args.group)} 连接测试成功")
        else:
            self._fail(f"分组 {self._display_group(args.group)} 连接测试失败")

    def execute_query(self, args: argparse.Namespace) -> None:
        """执行查询并输出结果"""
        params = self._parse_params(args.param)
        try:
            descriptor = self._load_descriptor(args.group)
            with PooledDataSource(descriptor) as data_source:
                with TransactionalSession.from_data_source(data_source) as session:
                    results = session.query(args.sql, dict_rows, params)
        except DBRunnerError as e:
            self._fail(f"查询失败: {e}")
            return
        except Exception as e:
            self._fail(f"查询失败: {e.__class__.__name__}: {e}")
            return

        if args.output:
            self._save_output(results, args.output, args.format)
        else:
            self._display_results(results, args.format)

    def execute_update(self, args: argparse.Namespace) -> None:
        """在事务中执行更新语句"""
        params = self._parse_params(args.param)
        try:
            descriptor = self._load_descriptor(args.group)
            with PooledDataSource(descriptor) as data_source:
                with TransactionalSession.from_data_source(data_source) as session:
                    count = session.run_in_transaction(lambda s: s.execute(args.sql, params))
        except DBRunnerError as e:
            self._fail(f"执行失败: {e}")
            return

        self.console.print(f"✅ 执行成功，影响行数: {count}")

    def init_config(self, args: argparse.Namespace) -> None:
        """生成示例配置文件"""
        target = Path(args.file)
        if target.exists() and not args.force:
            self._fail(f"配置文件已存在: {target}（使用 --force 覆盖）")
            return

        settings: Dict[str, Any] = {
            "url": args.url,
            "showSql": False,
            "formatSql": False,
            "showParams": False,
            "initialSize": 0,
            "minIdle": 0,
            "maxActive": 8,
            "maxWait": 6000,
        }
        group = args.group or DEFAULT_GROUP
        try:
            GroupedConfig({group: settings}).save(target)
        except DBRunnerError as e:
            self._fail(f"生成配置文件失败: {e}")
            return

        self.console.print(f"✅ 配置文件已生成: {target}")

    # ------------------------------------------------------------------ 参数与输出

    def _parse_params(self, params: Optional[List[str]]) -> Optional[Dict[str, Any]]:
        """
        解析命名参数列表，支持类型自动转换

        Args:
            params: 参数字符串列表，格式为 key=value

        Returns:
            Optional[Dict[str, Any]]: 转换后的键值对字典，没有参数时返回 None

        Example:
            >>> cli = DBRunnerCLI()
            >>> cli._parse_params(["id=30", "active=true", "name=bob"])
            {'id': 30, 'active': True, 'name': 'bob'}
        """
        if not params:
            return None

        result: Dict[str, Any] = {}
        for param in params:
            if "=" not in param:
                logger.warning(f"忽略无效的参数格式: {param}")
                continue
            key, value = param.split("=", 1)
            result[key.strip()] = self._convert_value_type(value)
        return result

    @staticmethod
    def _convert_value_type(value: str) -> Any:
        if value.lower() in ["true", "false"]:
            return value.lower() == "true"
        if value.lower() == "null":
            return None
        if value.lstrip("-").isdigit():
            return int(value)
        if value.lstrip("-").replace(".", "", 1).isdigit():
            return float(value)
        return value

    def _display_results(self, results: List[Dict[str, Any]], format: str = "table") -> None:
        if not results:
            self.console.print("没有结果")
            return

        if format == "json":
            self._display_json(results)
        elif format == "csv":
            self._display_csv(results)
        else:
            self._display_table(results)

    def _display_table(self, results: List[Dict[str, Any]]) -> None:
        headers = list(results[0].keys())
        table = Table(show_header=True, header_style="bold magenta", caption=f"总计: {len(results)} 行")
        for header in headers:
            table.add_column(str(header), max_width=MAX_COL_WIDTH, overflow="ellipsis")
        for row in results:
            table.add_row(*["NULL" if row.get(h) is None else str(row.get(h)) for h in headers])
        self.console.print(table)

    def _display_json(self, results: List[Dict[str, Any]]) -> None:
        print(json.dumps(results, indent=2, ensure_ascii=False, default=str))

    def _display_csv(self, results: List[Dict[str, Any]]) -> None:
        writer = csv.DictWriter(sys.stdout, fieldnames=list(results[0].keys()))
        writer.writeheader()
        writer.writerows(results)

    def _save_output(self, results: List[Dict[str, Any]], output_path: str, format: str) -> None:
        """
        将查询结果保存到文件

        Raises:
            SystemExit: 保存失败时
        """
        try:
            if format == "csv":
                with open(output_path, "w", newline="", encoding="utf-8") as f:
                    if results:
                        writer = csv.DictWriter(f, fieldnames=list(results[0].keys()))
                        writer.writeheader()
                        writer.writerows(results)
            elif format == "json":
                with open(output_path, "w", encoding="utf-8") as f:
                    json.dump(results, f, indent=2, ensure_ascii=False, default=str)
            else:
                with open(output_path, "w", encoding="utf-8") as f:
                    file_console = Console(file=f, width=200)
                    if results:
                        original = self.console
                        self.console = file_console
                        try:
                            self._display_table(results)
                        finally:
                            self.console = original
        except OSError as e:
            self._fail(f"保存结果失败: {e}")
            return

        self.console.print(f"✅ 结果已保存到: {output_path}")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        argparse.ArgumentParser: 配置好的参数解析器
    """
    parser = argparse.ArgumentParser(
        prog="db-runner",
        description="DB Runner - 基于分组配置的SQL执行工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用示例:
  db-runner init config/db.toml --group dev --url sqlite:///dev.db
  db-runner groups
  db-runner query dev "SELECT * FROM users WHERE id = :id" -p id=1
  db-runner execute dev "DELETE FROM users WHERE id = :id" -p id=1
        """,
    )
    parser.add_argument("--config", help="配置文件路径（默认查找 ./config/db.toml 和用户配置目录）")
    parser.add_argument(
        "--log-level", default="WARNING", choices=VALID_LOG_LEVELS, help="日志级别"
    )
    parser.add_argument("--log-file", action="store_true", help="同时将日志写入用户配置目录下的日志文件")

    subparsers = parser.add_subparsers(title="可用命令", dest="command")

    subparsers.add_parser("groups", help="列出配置分组")

    show_parser = subparsers.add_parser("show", help="显示分组的连接池配置")
    show_parser.add_argument("group", help="分组名（空字符串表示默认分组）")

    test_parser = subparsers.add_parser("test", help="测试分组的数据库连接")
    test_parser.add_argument("group", help="分组名")

    query_parser = subparsers.add_parser("query", help="执行SQL查询")
    query_parser.add_argument("group", help="分组名")
    query_parser.add_argument("sql", help="SQL查询语句，支持 :name 命名参数")
    query_parser.add_argument("-p", "--param", action="append", help="命名参数 (key=value)，可重复")
    query_parser.add_argument("--format", choices=OUTPUT_FORMATS, default="table", help="输出格式")
    query_parser.add_argument("--output", help="输出文件路径")

    execute_parser = subparsers.add_parser("execute", help="在事务中执行更新语句")
    execute_parser.add_argument("group", help="分组名")
    execute_parser.add_argument("sql", help="SQL语句，支持 :name 命名参数")
    execute_parser.add_argument("-p", "--param", action="append", help="命名参数 (key=value)，可重复")

    init_parser = subparsers.add_parser("init", help="生成示例配置文件")
    init_parser.add_argument("file", help="配置文件路径")
    init_parser.add_argument("--group", default="", help="分组名，默认写入默认分组")
    init_parser.add_argument("--url", default="sqlite:///db_runner.db", help="数据库URL")
    init_parser.add_argument("--force", action="store_true", help="覆盖已存在的文件")

    return parser


COMMANDS = {
    "groups": DBRunnerCLI.list_groups,
    "show": DBRunnerCLI.show_group,
    "test": DBRunnerCLI.test_connection,
    "query": DBRunnerCLI.execute_query,
    "execute": DBRunnerCLI.execute_update,
    "init": DBRunnerCLI.init_config,
}


def main(argv: Optional[List[str]] = None) -> None:
    """
    DB Runner CLI 主入口函数

    解析命令行参数并执行相应的操作。
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        setup_logging(level=args.log_level, log_to_console=True, log_to_file=args.log_file)
    except (ValueError, OSError) as e:
        print(f"❌ 日志系统初始化失败: {e}")
        sys.exit(1)

    cli = DBRunnerCLI(args.config)
    COMMANDS[args.command](cli, args)


if __name__ == "__main__":
    main()
