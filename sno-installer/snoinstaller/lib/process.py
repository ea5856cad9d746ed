#!/usr/bin/env python3

# process.py - SNO Hub Installer external process libraries
# Part of the SNO Hub Installer homelab kit
#
#    Copyright (C) 2026 The SNO Hub Installer contributors
#
#    This program is free software: you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation, version 3.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
###############################################################################

import logging
import subprocess
import tempfile

from threading import Event


logger = logging.getLogger(__name__)


#
# Helper Classes
#
class CancelledException(Exception):
    """
    An exception when the run was cancelled by a signal
    """

    def __init__(self, reason=None):
        if reason is not None:
            self.msg = f"Cancelled: {reason}"
        else:
            self.msg = "Cancelled"

    def __str__(self):
        return str(self.msg)


class CommandFailedException(Exception):
    """
    An exception when an external command exits non-zero or cannot be started
    """

    def __init__(self, cmd, returncode=None, output=None, error=None):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        self.error = error

    def __str__(self):
        cmdline = " ".join(self.cmd)
        if self.error is not None:
            return f"Command '{cmdline}' failed: {self.error}"
        return f"Command '{cmdline}' failed with exit code {self.returncode}"


class Cancellation:
    """
    A cancellation token shared by every blocking call of one run

    The signal handlers set it; polling loops, subprocesses and Redfish requests
    check it and raise CancelledException instead of continuing.
    """

    def __init__(self):
        self.event = Event()
        self.reason = None

    def cancel(self, reason=None):
        self.reason = reason
        self.event.set()

    def is_set(self):
        return self.event.is_set()

    def check(self):
        if self.event.is_set():
            raise CancelledException(self.reason)

    def sleep(self, seconds):
        if self.event.wait(seconds):
            raise CancelledException(self.reason)


#
# Command functions
#
def run_command(cmd, cancel, env=None, poll_interval=0.5):
    """
    Run an external command to completion and return its combined output
    """
    cancel.check()
    logger.info(f"Running: {' '.join(cmd)}")

    with tempfile.TemporaryFile(mode="w+b") as outfh:
        try:
            proc = subprocess.Popen(cmd, stdout=outfh, stderr=subprocess.STDOUT, env=env)
        except OSError as e:
            raise CommandFailedException(cmd, error=e)

        while True:
            try:
                proc.wait(timeout=poll_interval)
                break
            except subprocess.TimeoutExpired:
                if not cancel.is_set():
                    continue
                logger.warning(f"Terminating '{cmd[0]}' (pid {proc.pid})")
                proc.terminate()
                try:
                    proc.wait(timeout=10)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    proc.wait()
                raise CancelledException(cancel.reason)

        # Tools may print arbitrary bytes; never let decoding fail the step
        outfh.seek(0)
        output = outfh.read().decode("utf-8", errors="replace")

    if proc.returncode != 0:
        logger.error(f"Command '{cmd[0]}' exited with code {proc.returncode}:")
        for line in output.splitlines():
            logger.error(f"> {line}")
        raise CommandFailedException(cmd, returncode=proc.returncode, output=output)

    logger.debug(output)
    return output
