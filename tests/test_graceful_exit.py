import signal
import threading

import pytest

from violationhub.runtime.graceful_exit import (
    GracefulShutdown,
    graceful_execution_context,
    install_signal_handlers,
)


def test_graceful_shutdown_exits_cleanly():
    with pytest.raises(SystemExit) as excinfo:
        with graceful_execution_context():
            raise GracefulShutdown("Received signal 15")

    assert excinfo.value.code == 0


def test_other_errors_propagate():
    with pytest.raises(RuntimeError):
        with graceful_execution_context():
            raise RuntimeError("boom")


def test_signal_handlers_installed_in_main_thread(mocker):
    install = mocker.patch("violationhub.runtime.graceful_exit.signal.signal")

    assert install_signal_handlers() is True
    installed = [call.args[0] for call in install.call_args_list]
    assert signal.SIGINT in installed


def test_signal_handlers_skipped_in_worker_thread(mocker):
    install = mocker.patch("violationhub.runtime.graceful_exit.signal.signal")
    results = []

    worker = threading.Thread(target=lambda: results.append(install_signal_handlers()))
    worker.start()
    worker.join()

    assert results == [False]
    install.assert_not_called()
