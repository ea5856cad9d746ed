#!/usr/bin/env python3

# Installer.py - SNO Hub Installer command-line entrypoint
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
import os
import signal
import sys

import snoinstaller.lib.config as configuration
import snoinstaller.lib.lib as lib
import snoinstaller.lib.redfish as redfish

from snoinstaller.lib.process import Cancellation, CancelledException

# Installer version
version = "0.1"


logger = logging.getLogger(__name__)


USAGE = """Usage: sno-installer [command]

Commands:
  config                      - Create configuration file
  power-on                    - Power on the system via iDRAC
  power-off                   - Power off the system via iDRAC
  restart                     - Restart the system
  status                      - Get system power and health status
  info                        - Get system information
  lifecycle-controller        - Get iDRAC lifecycle controller information
  eject-media                 - Eject virtual media
  insert-media <url>          - Insert virtual media
  set-boot-cd                 - Set boot device to Virtual CD/DVD
  set-boot-cd-enhanced        - Set boot device to Virtual CD/DVD (tries every firmware name)
  set-boot-hdd                - Set boot device to HDD
  virtual-media-info          - Get virtual media information
  manage-virtual-boot <url>   - Eject, insert, set boot to virtual CD and restart
  cleanup [poweroff]          - Eject media and restore HDD boot, optionally power off
  install                     - Run full OpenShift SNO hub installation (default)
  help                        - Show this message

The configuration file is read from $SNO_INSTALLER_CONFIG_FILE (default: idrac_config.yaml)."""

COMMANDS = [
    "install",
    "power-on",
    "power-off",
    "restart",
    "status",
    "info",
    "lifecycle-controller",
    "eject-media",
    "insert-media",
    "set-boot-cd",
    "set-boot-cd-enhanced",
    "set-boot-hdd",
    "virtual-media-info",
    "manage-virtual-boot",
    "cleanup",
]

URL_COMMANDS = ["insert-media", "manage-virtual-boot"]

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


##########################################################
# Helper Functions
##########################################################


def setup_logging(log_file=None, debug=False):
    """
    Log to stdout and, if given and it can be opened, to log_file
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    file_error = None
    if log_file is not None:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            file_error = e

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    # requests/urllib3 connection chatter is only interesting when debugging
    logging.getLogger("urllib3").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("paramiko").setLevel(logging.DEBUG if debug else logging.WARNING)

    if file_error is not None:
        logger.warning(f"Failed to open log file {log_file}: {file_error}")


def install_signal_handlers(cancel):
    def term(signum="", frame=""):
        signame = signal.Signals(signum).name
        logger.warning(f"Received {signame}, cancelling and cleaning up...")
        cancel.cancel(f"received {signame}")

    signal.signal(signal.SIGTERM, term)
    signal.signal(signal.SIGINT, term)


##########################################################
# Command dispatch
##########################################################


def dispatch(command, args, config, session, cancel):
    if command == "install":
        lib.run_install(config, session, cancel)

    elif command == "power-on":
        lib.power_on(config, session)

    elif command == "power-off":
        lib.power_off(config, session)

    elif command == "restart":
        logger.info("Restarting system...")
        redfish.restart_system(session)

    elif command == "status":
        lib.get_status(config, session)

    elif command == "info":
        lib.get_info(config, session)

    elif command == "lifecycle-controller":
        redfish.get_manager_info(session)

    elif command == "eject-media":
        redfish.eject_virtual_media(session)

    elif command == "insert-media":
        redfish.insert_virtual_media(session, args[0])

    elif command == "set-boot-cd":
        redfish.set_virtual_cd_boot(session)

    elif command == "set-boot-cd-enhanced":
        redfish.set_virtual_cd_boot_enhanced(session)

    elif command == "set-boot-hdd":
        redfish.set_hdd_boot(session)

    elif command == "virtual-media-info":
        redfish.get_virtual_media_info(session)

    elif command == "manage-virtual-boot":
        if not lib.manage_virtual_boot(config, session, args[0]):
            logger.warning("Server did not report power on after restart")

    elif command == "cleanup":
        lib.cleanup(config, session, power_off=len(args) > 0 and args[0] == "poweroff")


def main(argv):
    args = argv[1:]
    command = args[0] if len(args) > 0 else "install"
    command_args = args[1:]

    if command == "help" or command not in COMMANDS + ["config"]:
        print(USAGE)
        return 0

    # The log file location is only known once the configuration is loaded
    setup_logging()

    if command == "config":
        config_file = configuration.write_default_config(configuration.get_config_path())
        logger.info(f"Configuration file created at {config_file}")
        logger.warning("Please edit the configuration file with your settings before running the installer")
        return 0

    if command in URL_COMMANDS and len(command_args) < 1:
        logger.error(f"Please provide the ISO URL as the argument to '{command}'")
        return 1

    try:
        config = configuration.read_config()
    except (configuration.MalformedConfigurationError, OSError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1

    setup_logging(config["logging_log_file"], debug=config["logging_debug"])
    logger.debug(f"SNO Hub Installer v{version}, command '{command}'")

    cancel = Cancellation()
    install_signal_handlers(cancel)
    session = lib.get_session(config, cancel)

    try:
        dispatch(command, command_args, config, session, cancel)
    except CancelledException as e:
        logger.error(f"Command '{command}' was interrupted: {e}")
        return 130
    except Exception as e:
        logger.debug("Traceback:", exc_info=True)
        logger.error(f"Command '{command}' failed: {e}")
        return 1

    logger.info(f"Command '{command}' completed successfully")
    return 0


##########################################################
# Entrypoint
##########################################################


def entrypoint():
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    entrypoint()
