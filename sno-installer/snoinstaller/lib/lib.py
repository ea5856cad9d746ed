#!/usr/bin/env python3

# lib.py - SNO Hub Installer libraries
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

import snoinstaller.lib.openshift as openshift
import snoinstaller.lib.redfish as redfish
import snoinstaller.lib.ssh as ssh

from filelock import FileLock, Timeout

from snoinstaller.lib.config import get_iso_path, get_lock_path
from snoinstaller.lib.process import CancelledException


logger = logging.getLogger(__name__)


class WorkdirBusyError(Exception):
    """
    An exception when another installation holds the work directory lock
    """

    def __init__(self, workdir):
        self.msg = f"ERROR: Work directory {workdir} is in use by another installation"

    def __str__(self):
        return str(self.msg)


def get_session(config, cancel):
    return redfish.RedfishSession(
        f"https://{config['idrac_ip']}",
        config["idrac_username"],
        config["idrac_password"],
        verify_ssl=config["idrac_verify_ssl"],
        timeout=config["idrac_timeout"],
        cancel=cancel,
    )


#
# Single-step functions
#
def power_on(config, session):
    logger.info("Powering on system...")
    redfish.set_power_state(
        session,
        "on",
        interval=config["idrac_poll_interval"],
        max_attempts=config["idrac_poll_attempts"],
    )


def power_off(config, session):
    logger.info("Powering off system...")
    redfish.set_power_state(
        session,
        "off",
        interval=config["idrac_poll_interval"],
        max_attempts=config["idrac_poll_attempts"],
    )


def get_status(config, session):
    logger.info("Getting system status...")
    power_state = redfish.get_power_state(session)
    health = redfish.get_system_health(session)
    logger.info("System Status:")
    logger.info(f"> Power State: {power_state}")
    logger.info(f"> Health: {health}")


def get_info(config, session):
    """
    Log the system and lifecycle controller details; neither failing is fatal
    """
    logger.info("Getting system information...")
    try:
        redfish.get_system_info(session)
    except redfish.RedfishException as e:
        logger.warning(f"Failed to get system info: {e}")

    try:
        redfish.get_manager_info(session)
    except redfish.RedfishException as e:
        logger.warning(f"Failed to get lifecycle controller info: {e}")


def manage_virtual_boot(config, session, image_url):
    return redfish.VirtualMediaBoot(
        session,
        image_url,
        settle_time=config["idrac_settle_time"],
        poll_interval=config["idrac_poll_interval"],
        poll_attempts=config["idrac_poll_attempts"],
    ).run()


def cleanup(config, session, power_off=False):
    """
    Best-effort return of the system to disk boot with no media attached

    Step failures are logged, never raised; it runs after failures and must
    not hide them. Only a cancelled power-off raises CancelledException.
    """
    logger.info("Performing cleanup...")

    # Restoring the boot state still runs after the operator interrupted the run
    restore_session = session.without_cancel()

    steps = [
        ("eject virtual media", lambda: redfish.eject_virtual_media(restore_session)),
        ("set boot to HDD", lambda: redfish.set_hdd_boot(restore_session)),
    ]
    # The power-off poll is long and must stay interruptible
    if power_off:
        steps.append(
            (
                "power off system",
                lambda: redfish.set_power_state(
                    session,
                    "off",
                    interval=config["idrac_poll_interval"],
                    max_attempts=config["idrac_poll_attempts"],
                ),
            )
        )

    failed = False
    for description, step in steps:
        try:
            step()
        except CancelledException:
            raise
        except Exception as e:
            failed = True
            logger.warning(f"Failed to {description}: {e}")

    if failed:
        logger.warning("Cleanup completed with errors")
    else:
        logger.info("Cleanup completed")
    return not failed


def monitor_installation(config, session, cancel):
    """
    Wait for the installer to finish, but only if the server is actually on
    """
    logger.info("Monitoring installation progress...")
    try:
        power_state = redfish.get_power_state(session)
    except redfish.RedfishException as e:
        logger.warning(f"Failed to get power state: {e}")
        logger.warning("Skipping wait-for install-complete.")
        return False

    if power_state != "On":
        logger.warning(f"Server power state is: {power_state}")
        logger.warning("Skipping wait-for install-complete.")
        return False

    logger.info("Server is powered ON. Running wait-for install-complete...")
    try:
        openshift.wait_for_install_complete(config, cancel)
    except CancelledException:
        raise
    except Exception as e:
        logger.warning(f"Installation wait failed: {e}")
        return False

    return True


#
# Entry function
#
def run_install(config, session, cancel):
    """
    Run the full single-node OpenShift installation
    """
    logger.info("Starting OpenShift SNO Hub Installation with iDRAC Virtual Media")

    lock = FileLock(get_lock_path(config))
    try:
        lock.acquire(timeout=0)
    except Timeout:
        raise WorkdirBusyError(config["paths_workdir"])

    try:
        # Check iDRAC connectivity and report what we are about to install on
        redfish.check_connectivity(session)
        try:
            redfish.get_system_info(session)
        except redfish.RedfishException as e:
            logger.warning(f"Failed to get system info: {e}")

        # Check and set up the SSH key
        ssh.check_ssh_key(config, cancel)
        ssh.setup_ssh_key(config, cancel)

        # Extract the installer and build the agent image
        openshift.extract_installer(config, cancel)
        openshift.prepare_workdir(config)
        openshift.create_agent_image(config, cancel)

        # Publish the ISO on the remote web host
        ssh.copy_iso_to_remote(config, get_iso_path(config), cancel)

        # Boot the server from it
        converged = manage_virtual_boot(config, session, config["remote_iso_url"])
        if not converged:
            logger.warning("Server did not report power on after restart")

        monitor_installation(config, session, cancel)
    finally:
        cleanup(config, session, power_off=False)
        lock.release()

    logger.info("OpenShift SNO Hub installation completed successfully!")
