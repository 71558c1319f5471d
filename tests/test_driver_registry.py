import textwrap

import pytest

from rlm_eval.config import DriverSettings
from rlm_eval.driver_registry import DRIVERS, create_driver, register_driver
from rlm_eval.drivers import LocalDriver, SshDriver
from rlm_eval.exceptions import FatalEvalError

from conftest import FakeDriver


def _write_module(tmp_path, name, source):
    path = tmp_path / name
    path.write_text(textwrap.dedent(source))
    return path


def test_builtin_drivers():
    assert isinstance(create_driver("local", DriverSettings(agent_path="rlm")), LocalDriver)
    assert isinstance(create_driver("ssh", DriverSettings(host="box")), SshDriver)


def test_ssh_without_host_is_fatal():
    with pytest.raises(FatalEvalError):
        create_driver("ssh", DriverSettings())


def test_unknown_driver_is_fatal():
    with pytest.raises(FatalEvalError, match="Unknown driver"):
        create_driver("docker", DriverSettings())


def test_register_driver(monkeypatch):
    monkeypatch.setitem(DRIVERS, "fake", lambda settings: FakeDriver())
    assert isinstance(create_driver("fake", DriverSettings()), FakeDriver)


def test_register_driver_adds_entry(monkeypatch):
    monkeypatch.setattr("rlm_eval.driver_registry.DRIVERS", dict(DRIVERS))
    register_driver("other", lambda settings: FakeDriver())
    assert isinstance(create_driver("other", DriverSettings()), FakeDriver)


def test_custom_driver_file_with_factory(tmp_path):
    path = _write_module(
        tmp_path,
        "my_driver.py",
        """
        class MyDriver:
            def __init__(self, model):
                self.model = model

            async def call(self, query, context=None, options=None):
                raise NotImplementedError

        def create_driver(settings):
            return MyDriver(settings.model)
        """,
    )

    driver = create_driver(str(path), DriverSettings(model="m1"))

    assert type(driver).__name__ == "MyDriver"
    assert driver.model == "m1"


def test_custom_driver_file_with_instance(tmp_path):
    path = _write_module(
        tmp_path,
        "instance_driver.py",
        """
        class _Driver:
            async def call(self, query, context=None, options=None):
                raise NotImplementedError

        driver = _Driver()
        """,
    )

    driver = create_driver(str(path), DriverSettings())

    assert type(driver).__name__ == "_Driver"


def test_custom_driver_class_attr_is_instantiated(tmp_path):
    path = _write_module(
        tmp_path,
        "class_driver.py",
        """
        class ClassDriver:
            def __init__(self, settings):
                self.settings = settings

            async def call(self, query, context=None, options=None):
                raise NotImplementedError
        """,
    )

    driver = create_driver(f"{path}:ClassDriver", DriverSettings(host="h"))

    assert type(driver).__name__ == "ClassDriver"
    assert driver.settings.host == "h"


def test_custom_driver_without_call_is_fatal(tmp_path):
    path = _write_module(
        tmp_path,
        "bad_driver.py",
        """
        def create_driver(settings):
            return object()
        """,
    )

    with pytest.raises(FatalEvalError, match="does not implement"):
        create_driver(str(path), DriverSettings())


def test_custom_driver_module_without_exports_is_fatal(tmp_path):
    path = _write_module(tmp_path, "empty_driver.py", "VALUE = 1\n")

    with pytest.raises(FatalEvalError, match="must export"):
        create_driver(str(path), DriverSettings())


def test_missing_custom_driver_file(tmp_path):
    with pytest.raises(FatalEvalError, match="does not exist"):
        create_driver(str(tmp_path / "missing.py"), DriverSettings())


def test_unimportable_module_path():
    with pytest.raises(FatalEvalError, match="Error loading"):
        create_driver("no_such_package.drivers:make", DriverSettings())
