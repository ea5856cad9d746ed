#!/usr/bin/env python3

# ssh.py - SNO Hub Installer SSH libraries
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

import contextlib
import logging
import os
import paramiko
import posixpath
import shlex

from snoinstaller.lib.config import (
    MissingConfigurationError,
    get_ssh_private_key_path,
    get_ssh_public_key_path,
)
from snoinstaller.lib.process import CommandFailedException, run_command


logger = logging.getLogger(__name__)


#
# Helper Classes
#
class RemoteHostException(Exception):
    """
    An exception when the remote host cannot be reached or refuses us
    """

    def __init__(self, operation, target, error):
        self.operation = operation
        self.target = target
        self.error = error

    def __str__(self):
        return f"Failed to {self.operation} {self.target}: {self.error}"


class TransferProgress:
    """
    SFTP progress callback; logs every 10% and honours cancellation
    """

    def __init__(self, filename, cancel):
        self.filename = filename
        self.cancel = cancel
        self.last_decile = 0

    def __call__(self, transferred, total):
        self.cancel.check()
        if total <= 0:
            return
        decile = int(transferred * 10 / total)
        if decile > self.last_decile:
            self.last_decile = decile
            logger.info(
                f"Copying {self.filename}: {format_bytes_tohuman(transferred)} of {format_bytes_tohuman(total)} ({decile * 10}%)"
            )


#
# Helper functions
#
def format_bytes_tohuman(databytes):
    """
    Format a number of bytes into a human-readable value (using base-1000)
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if databytes < 1000 or unit == "TB":
            break
        databytes = databytes / 1000

    if unit == "B":
        return f"{int(databytes)}{unit}"
    return f"{round(databytes, 2)}{unit}"


def get_remote_target(config):
    return f"{config['remote_user']}@{config['remote_host']}"


@contextlib.contextmanager
def run_paramiko(config, password=None):
    """
    Connect to the remote host, with a password if given or else the local key
    """
    ssh_client = paramiko.SSHClient()
    ssh_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    try:
        if password is not None:
            ssh_client.connect(
                hostname=config["remote_host"],
                username=config["remote_user"],
                password=password,
                look_for_keys=False,
                allow_agent=False,
                timeout=30,
            )
        else:
            ssh_client.connect(
                hostname=config["remote_host"],
                username=config["remote_user"],
                key_filename=get_ssh_private_key_path(config),
                timeout=30,
            )
    except (paramiko.SSHException, OSError) as e:
        ssh_client.close()
        raise RemoteHostException("connect to", get_remote_target(config), e)

    try:
        yield ssh_client
    finally:
        ssh_client.close()


#
# SSH key functions
#
def check_ssh_key(config, cancel):
    """
    Make sure a local key pair exists, generating one if not

    Returns True if a key was generated.
    """
    private_key = get_ssh_private_key_path(config)
    logger.info("Checking SSH key...")

    if os.path.exists(private_key):
        logger.info(f"SSH key found: {private_key}")
        return False

    logger.info(f"SSH key not found. Generating a new ed25519 key at {private_key}...")
    key_dir = os.path.dirname(private_key)
    if key_dir:
        os.makedirs(key_dir, mode=0o700, exist_ok=True)

    run_command(["ssh-keygen", "-t", "ed25519", "-f", private_key, "-N", "", "-q"], cancel)
    logger.info("SSH key generated successfully")
    return True


def setup_ssh_key(config, cancel):
    """
    Install the local public key in the remote host's authorized_keys
    """
    public_key_path = get_ssh_public_key_path(config)
    if not os.path.isfile(public_key_path):
        raise MissingConfigurationError("SSH public key", public_key_path)

    with open(public_key_path, "r") as kfh:
        public_key = shlex.quote(kfh.read().strip())

    target = get_remote_target(config)
    logger.info(f"Copying SSH key to {target}...")
    cancel.check()

    remote_cmd = (
        "umask 077 && mkdir -p ~/.ssh && touch ~/.ssh/authorized_keys && "
        f"(grep -qxF {public_key} ~/.ssh/authorized_keys || echo {public_key} >> ~/.ssh/authorized_keys)"
    )

    with run_paramiko(config, password=config["remote_password"]) as c:
        try:
            stdin, stdout, stderr = c.exec_command(remote_cmd, timeout=30)
            exit_status = stdout.channel.recv_exit_status()
            errors = stderr.read().decode(errors="replace")
        except (paramiko.SSHException, OSError) as e:
            raise RemoteHostException("install SSH key on", target, e)

    if exit_status != 0:
        logger.error(f"Failed to copy SSH key: {errors}")
        raise CommandFailedException(
            ["ssh", target, remote_cmd], returncode=exit_status, output=errors
        )

    logger.info(f"SSH key copied to {target}")


#
# Transfer functions
#
def copy_file_to_remote(config, local_path, remote_dir, cancel):
    """
    Copy a local file into remote_dir on the remote host over SFTP
    """
    if not os.path.isfile(local_path):
        raise MissingConfigurationError("Local file", local_path)

    filename = os.path.basename(local_path)
    remote_path = posixpath.join(remote_dir, filename)
    destination = f"{get_remote_target(config)}:{remote_path}"
    logger.info(f"Copying {local_path} to {destination}")
    cancel.check()

    with run_paramiko(config) as c:
        try:
            with c.open_sftp() as sftp:
                sftp.put(local_path, remote_path, callback=TransferProgress(filename, cancel))
        except (paramiko.SSHException, OSError) as e:
            raise RemoteHostException("copy file to", destination, e)

    logger.info("File copied successfully")
    return remote_path


def copy_iso_to_remote(config, iso_path, cancel):
    """
    Copy the generated ISO to the remote web host

    A missing ISO is not an error; returns False so the operator can finish by hand.
    """
    if not os.path.isfile(iso_path):
        logger.warning(f"ISO not found: {iso_path}; skipping copy to remote host")
        return False

    copy_file_to_remote(config, iso_path, config["remote_path"], cancel)
    return True
