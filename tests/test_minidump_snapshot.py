import sys
import os
import json
import unittest
from unittest.mock import MagicMock, patch

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dump_report.cdb_stack_walker import CdbStackWalker
from dump_report.minidump_snapshot import (
    format_file_version,
    open_minidump_snapshot,
    snapshot_from_minidump,
)
from dump_report.snapshot import MEM_COMMIT, MEM_FREE, MEM_PRIVATE, SnapshotError, TargetType
from dump_report.stack_walker import StackWalkerUnavailable
import dump_report_cli


# Mock minidump classes
class MockEnumValue:
    def __init__(self, value):
        self.value = value

class MockMinidumpHeader:
    def __init__(self, flags):
        self.Flags = MockEnumValue(flags)

class MockSystemInfo:
    def __init__(self):
        self.ProcessorArchitecture = MockEnumValue(9)

class MockVersionInfo:
    def __init__(self):
        self.dwFileVersionMS = (10 << 16) | 0
        self.dwFileVersionLS = (19041 << 16) | 1023

class MockModule:
    def __init__(self, name, size, base, versioninfo=None):
        self.name = name
        self.size = size
        self.baseaddress = base
        self.versioninfo = versioninfo

class MockModuleList:
    def __init__(self):
        self.modules = [
            MockModule(r"C:\Windows\System32\ntdll.dll", 0x1f8000, 0x7ffb4a000000, MockVersionInfo()),
            MockModule(r"C:\app\app.exe", 0x20000, 0x400000),
        ]

class MockMemoryInfo:
    def __init__(self, base, size, state, mem_type):
        self.BaseAddress = base
        self.RegionSize = size
        self.State = MockEnumValue(state)
        self.Type = MockEnumValue(mem_type) if mem_type else None
        self.Protect = MockEnumValue(0x04)

class MockMemoryInfoList:
    def __init__(self):
        # Deliberately out of address order
        self.infos = [
            MockMemoryInfo(0x10000, 0x3000, MEM_COMMIT, MEM_PRIVATE),
            MockMemoryInfo(0x0, 0x10000, MEM_FREE, 0),
        ]

class MockMinidumpFile:
    def __init__(self, flags=0x2):
        self.header = MockMinidumpHeader(flags)
        self.sysinfo = MockSystemInfo()
        self.modules = MockModuleList()
        self.memory_info = MockMemoryInfoList()


CDB_OUTPUT = """
0:000> ~*kn 200

.  0  Id: 1f40.2c8c Suspend: 0 Teb: 00000050`d7f3c000 Unfrozen
 # Child-SP          RetAddr               Call Site
00 00000050`d80ff0e8 00007ffb`4a1b2a2e     ntdll!NtWaitForSingleObject+0x14
01 (Inline Function) --------`--------     app!Worker::Wait+0x0 [c:\\src\\worker.cpp @ 42]
02 00000050`d80ff0f0 00007ff6`12341234     KERNELBASE!WaitForSingleObjectEx+0x8e [minkernel\\kernelbase\\synch.c @ 1328]
03 00000050`d80ff190 00000000`00000000     app+0x1234

   1  Id: 1f40.3a10 Suspend: 0 Teb: 00000050`d7f3e000 Unfrozen
 # Child-SP          RetAddr               Call Site
00 00000050`d85ff6a8 00007ffb`4a1c5b8d     ntdll!NtWaitForWorkViaWorkerFactory+0x14
quit:
"""


class TestMinidumpSnapshot(unittest.TestCase):
    def test_snapshot_from_full_memory_dump(self):
        snapshot = snapshot_from_minidump(MockMinidumpFile(), r"C:\dumps\app.dmp", use_debugger=False)

        self.assertEqual(snapshot.target_type, TargetType.DUMP_FILE)
        self.assertEqual(snapshot.architecture, "Amd64")
        self.assertEqual(snapshot.threads, [])
        self.assertIsNone(snapshot.heap)
        self.assertIsNone(snapshot.stack_walker_factory)

        self.assertEqual(len(snapshot.modules), 2)
        self.assertEqual(snapshot.modules[0].version, "10.0.19041.1023")
        self.assertIsNone(snapshot.modules[1].version)
        self.assertEqual(snapshot.modules[1].file_size, 0x20000)

        self.assertEqual([r.base_address for r in snapshot.memory_regions], [0x0, 0x10000])
        self.assertTrue(snapshot.memory_regions[0].is_free)
        self.assertEqual(snapshot.memory_regions[0].type, 0)
        self.assertEqual(snapshot.memory_regions[1].type, MEM_PRIVATE)

    def test_snapshot_from_mini_dump_without_heap(self):
        snapshot = snapshot_from_minidump(MockMinidumpFile(flags=0x0), "mini.dmp")
        self.assertEqual(snapshot.target_type, TargetType.DUMP_FILE_NO_HEAP)
        self.assertIs(snapshot.stack_walker_factory, CdbStackWalker)

    def test_format_file_version(self):
        self.assertEqual(format_file_version(MockVersionInfo()), "10.0.19041.1023")
        self.assertIsNone(format_file_version(None))

    def test_open_missing_file(self):
        with self.assertRaises(SnapshotError):
            open_minidump_snapshot("does-not-exist.dmp")

    @patch("dump_report.minidump_snapshot.MinidumpFile")
    def test_open_unparseable_file(self, mock_minidump_file):
        mock_minidump_file.parse.side_effect = Exception("Header magic mismatch")
        with patch("os.path.exists", return_value=True):
            with self.assertRaises(SnapshotError):
                open_minidump_snapshot("garbage.dmp")


class TestCdbStackWalker(unittest.TestCase):
    def test_parse_output(self):
        threads = CdbStackWalker.parse_output(CDB_OUTPUT)

        self.assertEqual([tid for tid, _ in threads], [0x2c8c, 0x3a10])
        frames = threads[0][1]
        self.assertEqual([f.method for f in frames], [
            "NtWaitForSingleObject+0x14",
            "Worker::Wait+0x0",
            "WaitForSingleObjectEx+0x8e",
            "",
        ])
        self.assertEqual(frames[0].module, "ntdll")
        self.assertEqual(frames[2].source_file_name, r"minkernel\kernelbase\synch.c")
        self.assertEqual(frames[2].source_line_number, 1328)
        self.assertEqual(frames[3].module, "app+0x1234")
        self.assertEqual(len(threads[1][1]), 1)

    def test_parse_inline_frame(self):
        frame = CdbStackWalker.parse_frame(
            r"01 (Inline Function) --------`--------     app!Worker::Wait+0x0 [c:\src\worker.cpp @ 42]"
        )
        self.assertIsNotNone(frame)
        self.assertEqual(frame.module, "app")
        self.assertEqual(frame.method, "Worker::Wait+0x0")
        self.assertEqual(frame.source_file_name, r"c:\src\worker.cpp")
        self.assertEqual(frame.source_line_number, 42)

    def test_unavailable_without_debugger(self):
        snapshot = snapshot_from_minidump(MockMinidumpFile(), "app.dmp")
        with patch.object(CdbStackWalker, "_find_cdb", return_value=None):
            with self.assertRaises(StackWalkerUnavailable):
                CdbStackWalker(snapshot)

    def test_walker_matches_managed_threads(self):
        from dump_report.snapshot import SnapshotThread

        snapshot = snapshot_from_minidump(MockMinidumpFile(), "app.dmp")
        snapshot.threads.append(SnapshotThread(os_thread_id=0x3a10, managed_thread_id=4))
        with patch("os.path.exists", return_value=True), \
                patch.object(CdbStackWalker, "_run_cdb", return_value=CDB_OUTPUT):
            walker = CdbStackWalker(snapshot, cdb_path="cdb.exe")

        self.assertEqual([t.os_thread_id for t in walker.threads], [0x2c8c, 0x3a10])
        self.assertIsNone(walker.threads[0].managed_thread)
        self.assertEqual(walker.threads[1].managed_thread.managed_thread_id, 4)
        self.assertEqual(walker.get_stack_trace(0)[0].method, "NtWaitForSingleObject+0x14")

    def test_timeout_is_unavailable(self):
        import subprocess

        snapshot = snapshot_from_minidump(MockMinidumpFile(), "app.dmp")
        with patch("os.path.exists", return_value=True), \
                patch("os.path.getsize", return_value=1024), \
                patch("subprocess.run", side_effect=subprocess.TimeoutExpired("cdb", 120)):
            with self.assertRaises(StackWalkerUnavailable):
                CdbStackWalker(snapshot, cdb_path="cdb.exe")


class TestCli(unittest.TestCase):
    @patch("dump_report.minidump_snapshot.MinidumpFile")
    def test_report_command_writes_json(self, mock_minidump_file):
        import tempfile

        mock_minidump_file.parse.return_value = MockMinidumpFile(flags=0x0)
        with tempfile.TemporaryDirectory() as tmp:
            dump_path = os.path.join(tmp, "app.dmp")
            with open(dump_path, "wb") as f:
                f.write(b"MDMP")
            report_path = os.path.join(tmp, "out", "report.json")

            rc = dump_report_cli.main(["report", dump_path, "-f", report_path, "--no-debugger"])

            self.assertEqual(rc, 0)
            with open(report_path, encoding="utf-8") as f:
                data = json.load(f)
        self.assertEqual(data["AnalysisResult"], "CompletedSuccessfully")
        titles = [c["Title"] for c in data["Components"]]
        self.assertIn("app.dmp", titles)
        self.assertIn("Loaded modules", titles)
        self.assertNotIn("Thread stacks", titles)

    def test_report_command_missing_dump(self):
        rc = dump_report_cli.main(["report", "missing.dmp", "-f", "report.json"])
        self.assertEqual(rc, 1)


if __name__ == "__main__":
    unittest.main()
