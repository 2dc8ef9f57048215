"""
CDB Stack Walker - Unified thread stacks from the console debugger
Part of Dump Report Analyzer

Handles:
- CDB detection and location
- Script generation
- Running the debugger over the dump file
- Parsing per-thread stack output
- Matching debugger threads to managed threads by OS thread id
"""

import os
import re
import shutil
import subprocess
import tempfile
from typing import List, Optional, Tuple

from .stack_walker import StackWalker, StackWalkerUnavailable, UnifiedStackFrame


class CdbStackWalker(StackWalker):
    """Stack walker backed by a CDB run over the snapshot's dump file"""

    CDB_PATHS = [
        r"C:\Program Files (x86)\Windows Kits\10\Debuggers\x64\cdb.exe",
        r"C:\Program Files (x86)\Windows Kits\10\Debuggers\x86\cdb.exe",
        r"C:\Program Files (x86)\Windows Kits\11\Debuggers\x64\cdb.exe",
        r"C:\Program Files (x86)\Windows Kits\11\Debuggers\x86\cdb.exe",
        r"C:\Program Files\Windows Kits\10\Debuggers\x64\cdb.exe",
        r"C:\Program Files\Windows Kits\11\Debuggers\x64\cdb.exe",
    ]

    MAX_FRAMES = 200

    # "   0  Id: 1f40.2c8c Suspend: 0 Teb: 00000050`d7f3c000 Unfrozen"
    THREAD_HEADER_RE = re.compile(r'^[.#]?\s*\d+\s+Id:\s*([0-9a-f]+)\.([0-9a-f]+)', re.IGNORECASE)
    # "00 00000050`d80ff0e8 00007ffb`4a1b2a2e     ntdll!NtWaitForSingleObject+0x14"
    # "01 (Inline Function) --------`--------     app!Worker::Wait+0x0"
    FRAME_RE = re.compile(
        r'^([0-9a-f]{2,4})\s+([0-9a-f`]+|\(Inline Function\))\s+([0-9a-f`]+|-+`-+|-+)\s+(.+)$',
        re.IGNORECASE
    )
    # "... [d:\src\synch.c @ 123]"
    SOURCE_RE = re.compile(r'\s*\[(.+?)\s+@\s+(\d+)\]\s*$')

    VERBOSE = False

    def __init__(self, snapshot, cdb_path: Optional[str] = None):
        """Run the debugger and load every thread's stack.

        Raises:
            StackWalkerUnavailable: no debugger, no dump file, or the run failed.
        """
        super().__init__(snapshot)
        self.cdb_path = cdb_path or self._find_cdb()
        if self.cdb_path is None:
            raise StackWalkerUnavailable(
                "CDB not found. Install 'Debugging Tools for Windows' or set DUMP_REPORT_CDB_PATH"
            )

        dump_path = snapshot.dump_file
        if not os.path.exists(dump_path):
            raise StackWalkerUnavailable(f"Dump file not found: {dump_path}")

        output = self._run_cdb(dump_path)
        for os_thread_id, frames in self.parse_output(output):
            self._add_thread(os_thread_id, frames)
        self._log(f"Loaded stacks for {len(self._threads)} threads")

    def _log(self, message: str):
        """Log a message if verbose mode is enabled."""
        if self.VERBOSE:
            print(f"[CDB] {message}")

    def _find_cdb(self) -> Optional[str]:
        """Find CDB (console debugger)"""
        configured = os.environ.get("DUMP_REPORT_CDB_PATH")
        if configured and os.path.exists(configured):
            return configured

        for path in self.CDB_PATHS:
            if os.path.exists(path):
                return path

        return shutil.which("cdb") or shutil.which("cdb.exe")

    def generate_script(self) -> str:
        """Generated CDB command script dumping all thread stacks"""
        commands = [
            f"~*kn {self.MAX_FRAMES}",  # Numbered stack trace of every thread
            "q"  # Quit
        ]
        return "\n".join(commands)

    def _run_cdb(self, dump_path: str) -> str:
        # Create temp script file
        with tempfile.NamedTemporaryFile(mode='w', suffix='.txt', delete=False) as f:
            f.write(self.generate_script())
            script_path = f.name

        # Create temp log file for output
        log_file = tempfile.NamedTemporaryFile(mode='w', suffix='_cdb_output.txt', delete=False)
        log_path = log_file.name
        log_file.close()

        try:
            # Calculate timeout based on dump size (minimum 120 seconds, +30s per GB)
            try:
                dump_size_gb = os.path.getsize(dump_path) / (1024**3)
                timeout = max(120, int(120 + (dump_size_gb * 30)))
            except OSError:
                timeout = 120

            cmd = [
                self.cdb_path,
                "-logo", log_path,  # Redirect output to log file
                "-z", dump_path,  # Load dump
                "-c", f"$$>< {script_path}",  # Execute commands from script
            ]
            self._log(f"Running: {' '.join(cmd[:3])}...")
            self._log(f"Timeout: {timeout}s")

            # CREATE_NO_WINDOW flag prevents console window from appearing
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                creationflags=subprocess.CREATE_NO_WINDOW if hasattr(subprocess, 'CREATE_NO_WINDOW') else 0
            )

            # Read output from log file (more reliable than stdout/stderr)
            output = ""
            if os.path.exists(log_path):
                with open(log_path, 'r', encoding='utf-8', errors='ignore') as f:
                    output = f.read()

            # Fallback to stdout/stderr if log file is empty
            if not output:
                output = result.stdout + result.stderr
            return output

        except subprocess.TimeoutExpired:
            raise StackWalkerUnavailable(f"CDB timed out after {timeout} seconds")
        except OSError as e:
            raise StackWalkerUnavailable(f"CDB execution error: {e}")
        finally:
            # Cleanup temp files
            for path in (script_path, log_path):
                try:
                    if os.path.exists(path):
                        os.unlink(path)
                except OSError:
                    # Could not delete temporary file
                    pass

    @classmethod
    def parse_frame(cls, line: str) -> Optional[UnifiedStackFrame]:
        """Parse one 'kn' output line, None if it is not a frame"""
        match = cls.FRAME_RE.match(line)
        if not match:
            return None

        call_site = match.group(4).strip()
        source_file = None
        source_line = 0
        source = cls.SOURCE_RE.search(call_site)
        if source:
            source_file = source.group(1)
            source_line = int(source.group(2))
            call_site = call_site[:source.start()].strip()

        if "!" in call_site:
            module, method = call_site.split("!", 1)
        else:
            # Unresolved frames are a bare module+offset or address
            module, method = call_site, ""

        return UnifiedStackFrame(
            module=module,
            method=method,
            source_file_name=source_file,
            source_line_number=source_line,
        )

    @classmethod
    def parse_output(cls, output: str) -> List[Tuple[int, List[UnifiedStackFrame]]]:
        """Split '~*kn' output into (OS thread id, frames) in debugger order"""
        threads: List[Tuple[int, List[UnifiedStackFrame]]] = []
        frames: Optional[List[UnifiedStackFrame]] = None

        for line in output.split('\n'):
            line = line.strip()
            if not line:
                continue

            header = cls.THREAD_HEADER_RE.match(line)
            if header:
                frames = []
                threads.append((int(header.group(2), 16), frames))
                continue

            if frames is None or line.startswith('#') or line.startswith('*'):
                continue

            frame = cls.parse_frame(line)
            if frame:
                frames.append(frame)

        return threads
