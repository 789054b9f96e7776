"""Tests for vmctl.exceptions module."""

from __future__ import annotations

import pytest

from vmctl.exceptions import (
    ConfigurationError,
    ImageNotFoundError,
    InstanceAlreadyRunningError,
    InstanceNotFoundError,
    InstanceNotRunningError,
    LaunchError,
    ManagerError,
    StoreError,
    TerminationError,
)


@pytest.mark.parametrize(
    "exc",
    [
        InstanceNotFoundError("alpha"),
        InstanceAlreadyRunningError("alpha"),
        InstanceNotRunningError("alpha"),
        LaunchError("boom"),
        TerminationError("alpha", 42),
        StoreError("boom"),
        ConfigurationError("boom"),
        ImageNotFoundError("boom"),
    ],
)
def test_all_errors_are_manager_errors(exc):
    assert isinstance(exc, ManagerError)


def test_not_found_message():
    assert str(InstanceNotFoundError("alpha")) == "Virtual machine with name or ID alpha not found."


def test_launch_error_exit_code():
    assert LaunchError("boom").exit_code is None
    assert LaunchError("boom", exit_code=3).exit_code == 3


def test_termination_error_message():
    assert str(TerminationError("alpha", 42)) == "Failed to stop virtual machine alpha (PID 42)"
