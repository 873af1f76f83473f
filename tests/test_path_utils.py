"""
路径处理工具测试
"""

from pathlib import Path

import pytest

from db_runner.utils.path_utils import PathHelper


class TestPathHelper:
    """PathHelper 测试类"""

    def test_linux_config_dir_uses_xdg(self, monkeypatch, tmp_path):
        """测试Linux下优先使用 XDG_CONFIG_HOME"""
        monkeypatch.setattr("db_runner.utils.path_utils.platform.system", lambda: "Linux")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

        config_dir = PathHelper.get_user_config_dir("test_app")

        assert config_dir == tmp_path / "test_app"
        assert config_dir.is_dir()

    def test_linux_config_dir_default(self, monkeypatch, tmp_path):
        """测试Linux下未设置 XDG_CONFIG_HOME 时使用 ~/.config"""
        monkeypatch.setattr("db_runner.utils.path_utils.platform.system", lambda: "Linux")
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        config_dir = PathHelper.get_user_config_dir("test_app", create=False)

        assert config_dir == tmp_path / ".config" / "test_app"
        assert not config_dir.exists()

    def test_macos_config_dir(self, monkeypatch, tmp_path):
        """测试macOS下的配置目录"""
        monkeypatch.setattr("db_runner.utils.path_utils.platform.system", lambda: "Darwin")
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        config_dir = PathHelper.get_user_config_dir("test_app")

        assert config_dir == tmp_path / "Library" / "Application Support" / "test_app"
        assert config_dir.is_dir()

    def test_empty_app_name(self):
        """测试空的应用名称"""
        with pytest.raises(ValueError):
            PathHelper.get_user_config_dir("")

    def test_ensure_dir_exists(self, tmp_path):
        """测试递归创建目录"""
        target = tmp_path / "a" / "b" / "c"

        assert PathHelper.ensure_dir_exists(target)
        assert target.is_dir()
        assert PathHelper.ensure_dir_exists(str(target))

    def test_ensure_dir_exists_on_file(self, tmp_path):
        """测试路径已存在但是文件"""
        target = tmp_path / "file.txt"
        target.write_text("x", encoding="utf-8")

        assert not PathHelper.ensure_dir_exists(target)

    def test_ensure_dir_exists_empty(self):
        """测试空路径"""
        assert not PathHelper.ensure_dir_exists("")
