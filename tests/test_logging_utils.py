"""
日志配置与SQL日志测试
"""

import logging

import pytest
import sqlglot
from sqlglot.errors import ParseError

from db_runner.utils.logging_utils import (
    SQL_LOGGER_NAME,
    SqlLog,
    SqlLogConfig,
    get_logger,
    set_log_level,
    setup_logging,
)


class TestSetupLogging:
    """setup_logging 测试类"""

    def setup_method(self):
        """测试方法 setup"""
        self.app_name = "db_runner_test_app"

    def teardown_method(self):
        """测试方法 teardown"""
        logger = logging.getLogger(self.app_name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()

    def test_file_logging(self, tmp_path):
        """测试日志写入文件"""
        logger = setup_logging(self.app_name, "DEBUG", log_dir=str(tmp_path))
        logger.debug("调试信息")
        for handler in logger.handlers:
            handler.flush()

        log_file = tmp_path / f"{self.app_name}.log"
        assert log_file.exists()
        assert "调试信息" in log_file.read_text(encoding="utf-8")

    def test_reconfigure_replaces_handlers(self, tmp_path):
        """测试重复配置不会叠加handler"""
        setup_logging(self.app_name, log_dir=str(tmp_path))
        logger = setup_logging(self.app_name, log_to_console=True, log_dir=str(tmp_path))

        assert len(logger.handlers) == 2

    def test_invalid_level(self):
        """测试无效的日志级别"""
        with pytest.raises(ValueError):
            setup_logging(self.app_name, "LOUD", log_to_console=True, log_to_file=False)

    def test_no_output(self):
        """测试未启用任何输出方式"""
        with pytest.raises(ValueError):
            setup_logging(self.app_name, log_to_console=False, log_to_file=False)

    def test_set_log_level(self):
        """测试动态调整日志级别"""
        logger = setup_logging(self.app_name, "INFO", log_to_console=True, log_to_file=False)

        set_log_level(self.app_name, "error")

        assert logger.level == logging.ERROR
        assert all(handler.level == logging.ERROR for handler in logger.handlers)
        assert get_logger(self.app_name) is logger


class TestSqlLog:
    """SqlLog 测试类"""

    def test_disabled_by_default(self, caplog):
        """测试默认不输出SQL"""
        sql_log = SqlLog()

        with caplog.at_level(logging.DEBUG, logger=SQL_LOGGER_NAME):
            sql_log.log("SELECT 1")

        assert not sql_log.enabled
        assert caplog.text == ""

    def test_show_sql_without_params(self, caplog):
        """测试只显示SQL"""
        sql_log = SqlLog(SqlLogConfig(show_sql=True))

        with caplog.at_level(logging.DEBUG, logger=SQL_LOGGER_NAME):
            sql_log.log("SELECT * FROM t WHERE id = ?", (1,))

        assert "[SQL] : SELECT * FROM t WHERE id = ?" in caplog.text
        assert "[Params]" not in caplog.text

    def test_respects_logger_level(self, caplog):
        """测试日志级别低于logger级别时不输出"""
        sql_log = SqlLog(SqlLogConfig(show_sql=True, level="DEBUG"))

        with caplog.at_level(logging.WARNING, logger=SQL_LOGGER_NAME):
            sql_log.log("SELECT 1")

        assert caplog.text == ""

    def test_format_sql(self):
        """测试格式化SQL"""
        formatted = SqlLog.format("select a, b from t where id = 1")

        assert "SELECT" in formatted
        assert "\n" in formatted

    def test_format_unparseable_sql_returns_raw(self, monkeypatch):
        """测试无法解析的SQL原样返回"""

        def fail(*args, **kwargs):
            raise ParseError("cannot parse")

        monkeypatch.setattr(sqlglot, "transpile", fail)
        raw = "SELECT :odd ((("

        assert SqlLog.format(raw) == raw

    def test_invalid_level(self):
        """测试无效的SQL日志级别"""
        with pytest.raises(ValueError):
            SqlLogConfig(level="TRACE")
