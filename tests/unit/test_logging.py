import logging

from microgrid.core.logging import get_logger, setup_logging


class TestStructuredLogger:
    def test_fields_are_appended(self, caplog) -> None:
        caplog.set_level(logging.INFO, logger="microgrid.test")

        get_logger("microgrid.test").info("Trade executed", trade_id="trade_002", amount_kwh=4.0)

        assert caplog.messages == ["Trade executed | trade_id=trade_002 | amount_kwh=4.0"]

    def test_plain_message(self, caplog) -> None:
        caplog.set_level(logging.INFO, logger="microgrid.test")
        get_logger("microgrid.test").warning("Snapshot conflict")
        assert caplog.messages == ["Snapshot conflict"]

    def test_below_level_is_dropped(self, caplog) -> None:
        caplog.set_level(logging.INFO, logger="microgrid.test")
        get_logger("microgrid.test").debug("Tick", version=3)
        assert caplog.messages == []


class TestSetupLogging:
    def test_repeat_calls_keep_one_console_handler(self) -> None:
        setup_logging()
        setup_logging()

        marked = [h for h in logging.getLogger().handlers if getattr(h, "_microgrid_console", False)]
        assert len(marked) == 1
        assert logging.getLogger("redis").level == logging.WARNING
