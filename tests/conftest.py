from __future__ import annotations

from typing import List

import pytest


def frame_line(number: int, binary_name: str, address: str, symbol: str) -> str:
    """Stack frame line laid out the way Apple's crash reporter writes it."""
    return f"{number:<4}{binary_name:<30}\t{address} {symbol}"


MYAPP_PATH = "/private/var/containers/Bundle/Application/ABC/MyApp.app/MyApp"
MYAPP_UUID = "5e2d1a7c0b8e3f4a9c612d7e8b0a0c1f"
KERNEL_PATH = "/usr/lib/system/libsystem_kernel.dylib"
KERNEL_UUID = "0a1b2c3d4e5f60718293a4b5c6d7e8f9"


def sample_lines() -> List[str]:
    return [
        "Incident Identifier: 6B3D4F5A-1234-4C2B-9E8D-0A1B2C3D4E5F",
        "CrashReporter Key:   0123456789abcdef",
        "Hardware Model:      iPhone14,2",
        "Process:             MyApp [1234]",
        f"Path:                {MYAPP_PATH}",
        "Identifier:          com.example.MyApp",
        "Version:             1 (1.0)",
        "Code Type:           ARM-64 (Native)",
        "Role:                Foreground",
        "Parent Process:      launchd [1]",
        "Coalition:           com.example.MyApp [500]",
        "",
        "Date/Time:           2021-05-01 12:34:56.789 +0900",
        "Launch Time:         2021-05-01 12:34:50.123 +0900",
        "OS Version:          iPhone OS 14.5 (18E199)",
        "Release Type:        User",
        "",
        "Exception Type:  EXC_CRASH (SIGABRT)",
        "Exception Codes: 0x0000000000000000, 0x0000000000000000",
        "Exception Note:  EXC_CORPSE_NOTIFY",
        "Triggered by Thread:  0",
        "",
        "Last Exception Backtrace:",
        "(0x180a3c000 0x100004100 0x190000000)",
        "",
        "Thread 0 name:  Dispatch queue: com.apple.main-thread",
        "Thread 0 Crashed:",
        frame_line(0, "libsystem_kernel.dylib", "0x0000000180a3c100", "0x180a30000 + 49408"),
        frame_line(1, "MyApp", "0x0000000100004100", "0x100000000 + 16640"),
        frame_line(2, "MyApp", "0x0000000100004200", "main + 96 (main.m:17)"),
        "",
        "Thread 1:",
        frame_line(0, "libsystem_kernel.dylib", "0x0000000180a3c200", "0x180a30000 + 49664"),
        "",
        "Thread 0 crashed with ARM Thread State (64-bit):",
        "    x0: 0x0000000000000000   x1: 0x0000000000000000",
        "",
        "Binary Images:",
        f"0x100000000 - 0x100007fff MyApp arm64  <{MYAPP_UUID}> {MYAPP_PATH}",
        f"0x180a30000 - 0x180a67fff libsystem_kernel.dylib arm64e  <{KERNEL_UUID}> {KERNEL_PATH}",
        "",
        "EOF",
    ]


# Line indexes inside sample_lines()
EXCEPTION_ADDRESSES_LINE = 23
THREAD0_FRAME_LINES = (27, 28, 29)
THREAD1_FRAME_LINE = 32


@pytest.fixture
def report_lines() -> List[str]:
    return sample_lines()


@pytest.fixture
def report_text() -> str:
    return "\n".join(sample_lines())
