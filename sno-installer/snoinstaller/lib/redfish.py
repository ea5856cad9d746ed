#!/usr/bin/env python3

# redfish.py - SNO Hub Installer Redfish libraries
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

# Refs:
# https://downloads.dell.com/manuals/all-products/esuprt_software/esuprt_it_ops_datcentr_mgmt/dell-management-solution-resources_white-papers11_en-us.pdf
# https://downloads.dell.com/solutions/dell-management-solution-resources/RESTfulSerConfig-using-iDRAC-REST%20API%28DTC%20copy%29.pdf

import copy
import json
import logging
import requests
import urllib3

from snoinstaller.lib.dataclasses import ManagerInfo, SystemInfo, VirtualMediaInfo
from snoinstaller.lib.process import Cancellation


logger = logging.getLogger(__name__)


SYSTEM_ROOT = "/redfish/v1/Systems/System.Embedded.1"
MANAGER_ROOT = "/redfish/v1/Managers/iDRAC.Embedded.1"
VIRTUAL_MEDIA_ROOT = f"{MANAGER_ROOT}/VirtualMedia/CD"

# Firmware generations name the virtual optical drive differently; older
# iDRAC 8 releases only accept the generic "Cd"
VIRTUAL_CD_BOOT_TARGETS = ["RemoteCd", "VirtualCd", "Cd"]

# Nice name -> (ResetType to send, PowerState to expect)
POWER_STATES = {
    "on": ("On", "On"),
    "off": ("ForceOff", "Off"),
}


#
# Helper Classes
#
class RedfishException(Exception):
    """
    Base of all failures talking to the Redfish controller
    """

    retryable = False


class TransportException(RedfishException):
    """
    The request never got a response (connection failure or timeout)
    """

    retryable = True

    def __init__(self, method, url, error):
        self.method = method
        self.url = url
        self.error = error

    def __str__(self):
        return f"{self.method} request to {self.url} failed: {self.error}"


class StatusException(RedfishException):
    """
    The controller answered with a non-success HTTP status
    """

    def __init__(self, method, url, response):
        self.method = method
        self.url = url
        self.status_code = response.status_code

        try:
            rinfo = response.json()["error"]["@Message.ExtendedInfo"][0]
        except (ValueError, KeyError, IndexError, TypeError):
            rinfo = dict()

        self.full_message = rinfo.get("Message", "")
        self.res_message = rinfo.get("Resolution", "")
        self.severity = rinfo.get("Severity", "Error")
        self.message_id = rinfo.get("MessageId", "N/A")

    def __str__(self):
        message = f"{self.method} request to {self.url} failed (HTTP Code: {self.status_code}, Severity: {self.severity}, ID: {self.message_id})"
        if self.full_message:
            message = f"{message}: {self.full_message} {self.res_message}".rstrip()
        return message


class ParseException(RedfishException):
    """
    The controller answered with success but the body could not be understood
    """

    def __init__(self, method, url, error):
        self.method = method
        self.url = url
        self.error = error

    def __str__(self):
        return f"Malformed response to {self.method} request to {self.url}: {self.error}"


class CandidatesExhaustedException(RedfishException):
    """
    Every candidate value was refused by the controller
    """

    def __init__(self, failures):
        self.failures = failures

    def __str__(self):
        tried = ", ".join(f"{candidate} ({error})" for candidate, error in self.failures)
        return f"No candidate was accepted; tried: {tried}"


class PowerStateTimeoutException(Exception):
    """
    The power state did not converge within the polling budget
    """

    def __init__(self, target_state, last_state, attempts, interval):
        self.target_state = target_state
        self.last_state = last_state
        self.attempts = attempts
        self.interval = interval

    def __str__(self):
        return f"Power state did not reach '{self.target_state}' after {self.attempts} checks at {self.interval}s intervals (last seen: '{self.last_state}')"


class RedfishSession:
    """
    An authenticated connection to an iDRAC Redfish service

    Every call issues exactly one request; retrying is up to the caller.
    """

    def __init__(self, host, username, password, verify_ssl=False, timeout=30, cancel=None):
        # Self-signed iDRAC certificates are the norm on an isolated network
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.host = host
        self.timeout = timeout
        self.cancel = cancel if cancel is not None else Cancellation()

        self.http = requests.Session()
        self.http.auth = (username, password)
        self.http.verify = verify_ssl
        self.http.headers.update({"content-type": "application/json"})

    def without_cancel(self):
        """
        Return a view of this session that ignores the run's cancellation
        """
        session = copy.copy(self)
        session.cancel = Cancellation()
        return session

    def request(self, method, uri, data=None):
        self.cancel.check()

        url = f"{self.host}{uri}"
        payload = None
        if data is not None:
            payload = json.dumps(data)
            logger.debug(f"{method} payload: {payload}")

        try:
            response = self.http.request(method, url, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"! Error: {method} request to {url} failed: {e}")
            raise TransportException(method, url, e)

        if response.status_code not in [200, 201, 202, 204]:
            e = StatusException(method, url, response)
            logger.warning(f"! Error: {method} request to {url} failed")
            logger.warning(
                f"! HTTP Code: {e.status_code}   Severity: {e.severity}   ID: {e.message_id}"
            )
            if e.full_message:
                logger.warning(f"! Details: {e.full_message} {e.res_message}")
            raise e

        # Actions and PATCHes frequently answer with an empty body
        if method != "GET" and (response.status_code == 204 or not response.content):
            return dict()

        try:
            detail = response.json()
        except ValueError as e:
            raise ParseException(method, url, e)

        if not isinstance(detail, dict):
            raise ParseException(method, url, "response body is not a JSON object")

        return detail

    def get(self, uri):
        return self.request("GET", uri)

    def post(self, uri, data):
        return self.request("POST", uri, data)

    def patch(self, uri, data):
        return self.request("PATCH", uri, data)


#
# Helper functions
#
def get_object(detail, key, uri):
    """
    Return a nested object from a response, tolerating its absence
    """
    value = detail.get(key)
    if value is None:
        return dict()
    if not isinstance(value, dict):
        raise ParseException("GET", uri, f"'{key}' is not an object")
    return value


def first_success(candidates, attempt):
    """
    Call attempt(candidate) for each candidate in order; the first that does
    not fail wins and no further candidates are tried
    """
    failures = list()
    for candidate in candidates:
        try:
            attempt(candidate)
        except RedfishException as e:
            logger.warning(f"Attempt with '{candidate}' failed: {e}")
            failures.append((candidate, e))
            continue
        return candidate

    raise CandidatesExhaustedException(failures)


#
# Redfish query functions
#
def check_connectivity(session):
    """
    Validate that the controller answers authenticated requests
    """
    logger.info(f"Checking iDRAC connectivity at {session.host}...")
    session.get(SYSTEM_ROOT)
    logger.info("iDRAC connectivity check successful")


def get_system_info(session):
    detail = session.get(SYSTEM_ROOT)
    status = get_object(detail, "Status", SYSTEM_ROOT)

    system_info = SystemInfo(
        manufacturer=detail.get("Manufacturer", ""),
        model=detail.get("Model", ""),
        serial_number=detail.get("SerialNumber", ""),
        bios_version=detail.get("BiosVersion", ""),
        power_state=detail.get("PowerState", ""),
        health=status.get("Health", ""),
    )

    logger.info("System Information:")
    logger.info(f"> Manufacturer: {system_info.manufacturer}")
    logger.info(f"> Model: {system_info.model}")
    logger.info(f"> Serial Number: {system_info.serial_number}")
    logger.info(f"> BIOS Version: {system_info.bios_version}")
    logger.info(f"> Power State: {system_info.power_state}")
    logger.info(f"> Health: {system_info.health}")

    return system_info


def get_power_state(session):
    detail = session.get(SYSTEM_ROOT)
    return detail.get("PowerState", "")


def get_system_health(session):
    detail = session.get(SYSTEM_ROOT)
    return get_object(detail, "Status", SYSTEM_ROOT).get("Health", "")


def get_manager_info(session):
    """
    Get the iDRAC lifecycle controller details
    """
    detail = session.get(MANAGER_ROOT)
    status = get_object(detail, "Status", MANAGER_ROOT)

    manager_info = ManagerInfo(
        firmware_version=detail.get("FirmwareVersion", ""),
        id=detail.get("Id", ""),
        name=detail.get("Name", ""),
        health=status.get("Health", ""),
        state=status.get("State", ""),
    )

    logger.info("iDRAC Lifecycle Controller Information:")
    logger.info(f"> Firmware Version: {manager_info.firmware_version}")
    logger.info(f"> ID: {manager_info.id}")
    logger.info(f"> Name: {manager_info.name}")
    logger.info(f"> Health: {manager_info.health}")
    logger.info(f"> State: {manager_info.state}")

    return manager_info


def get_virtual_media_info(session):
    detail = session.get(VIRTUAL_MEDIA_ROOT)

    media_types = detail.get("MediaTypes") or list()
    if not isinstance(media_types, list):
        raise ParseException("GET", VIRTUAL_MEDIA_ROOT, "'MediaTypes' is not a list")

    media_info = VirtualMediaInfo(
        connected_via=detail.get("ConnectedVia") or "",
        image=detail.get("Image") or "",
        image_name=detail.get("ImageName") or "",
        inserted=bool(detail.get("Inserted", False)),
        media_types=media_types,
    )

    logger.info("Virtual Media Information:")
    logger.info(f"> Connected Via: {media_info.connected_via}")
    logger.info(f"> Image: {media_info.image}")
    logger.info(f"> Image Name: {media_info.image_name}")
    logger.info(f"> Inserted: {media_info.inserted}")
    logger.info(f"> Media Types: {', '.join(media_info.media_types)}")

    return media_info


#
# Redfish Task functions
#
def eject_virtual_media(session):
    logger.info("Ejecting virtual media...")
    session.post(f"{VIRTUAL_MEDIA_ROOT}/Actions/VirtualMedia.EjectMedia", {})
    logger.info("Virtual media ejected")


def insert_virtual_media(session, image_url):
    logger.info(f"Inserting virtual media {image_url}...")
    session.post(
        f"{VIRTUAL_MEDIA_ROOT}/Actions/VirtualMedia.InsertMedia", {"Image": image_url}
    )
    logger.info("Virtual media inserted")


def set_boot_override(session, target, enabled="Once"):
    """
    Set the system boot override to the desired target
    """
    logger.info(f"Setting boot device to {target} ({enabled})...")
    session.patch(
        SYSTEM_ROOT,
        {
            "Boot": {
                "BootSourceOverrideTarget": target,
                "BootSourceOverrideEnabled": enabled,
            }
        },
    )
    logger.info(f"Boot device set to {target}")


def set_virtual_cd_boot(session):
    set_boot_override(session, "Cd")


def set_hdd_boot(session):
    set_boot_override(session, "Hdd")


def set_virtual_cd_boot_enhanced(session):
    """
    Set the boot override to the virtual CD, trying each firmware's name for it
    """
    try:
        media_info = get_virtual_media_info(session)
        if not media_info.inserted:
            logger.warning("No virtual media is currently inserted")
    except RedfishException as e:
        logger.warning(f"Could not get virtual media info: {e}")

    target = first_success(
        VIRTUAL_CD_BOOT_TARGETS, lambda target: set_boot_override(session, target)
    )
    logger.info(f"Boot device set to Virtual CD/DVD ({target})")
    return target


def reset_system(session, reset_type):
    logger.info(f"Sending reset '{reset_type}'...")
    session.post(f"{SYSTEM_ROOT}/Actions/ComputerSystem.Reset", {"ResetType": reset_type})


def restart_system(session):
    reset_system(session, "ForceRestart")


def wait_for_power_state(session, target_state, interval=10, max_attempts=30):
    """
    Poll the power state until it reads target_state or the attempts run out

    Returns the attempt on which the state was observed.
    """
    power_state = None
    for attempt in range(1, max_attempts + 1):
        session.cancel.sleep(interval)
        try:
            power_state = get_power_state(session)
        except TransportException as e:
            logger.warning(f"Power state check {attempt}/{max_attempts} failed: {e}")
            continue

        logger.info(f"Power state: {power_state} ({attempt}/{max_attempts})")
        if power_state == target_state:
            return attempt

    raise PowerStateTimeoutException(target_state, power_state, max_attempts, interval)


def set_power_state(session, state, interval=10, max_attempts=30):
    """
    Set the system power state to the desired state ("on"/"off")

    Returns False without sending anything if the system is already there.
    """
    reset_type, target_state = POWER_STATES[state]

    current_state = get_power_state(session)
    if current_state == target_state:
        logger.info(f"System is already powered {target_state}; nothing to do")
        return False

    reset_system(session, reset_type)
    wait_for_power_state(session, target_state, interval=interval, max_attempts=max_attempts)
    logger.info(f"System is now powered {target_state}")
    return True


#
# Entry class
#
class VirtualMediaBoot:
    """
    Boot the system from a network-hosted image through the virtual CD

    Ejects whatever is mounted, inserts the image, points the one-time boot
    override at the virtual CD, force-restarts and waits for the system to
    report power on again. Only the eject is allowed to fail; a power state
    that never converges is reported but does not fail the sequence.
    """

    IDLE = "Idle"
    EJECTING = "Ejecting"
    INSERTING = "Inserting"
    SETTING_BOOT_TARGET = "SettingBootTarget"
    RESTARTING = "Restarting"
    POLLING_POWER = "PollingPower"
    DONE = "Done"
    FAILED = "Failed"

    def __init__(self, session, image_url, settle_time=10, poll_interval=10, poll_attempts=30):
        self.session = session
        self.image_url = image_url
        self.settle_time = settle_time
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.state = self.IDLE
        self.boot_target = None

    def run(self):
        logger.info("Starting virtual media boot process...")
        try:
            converged = self.execute()
        except Exception:
            logger.error(f"Virtual media boot process failed while {self.state}")
            self.state = self.FAILED
            raise

        self.state = self.DONE
        logger.info("Virtual media boot process completed")
        return converged

    def execute(self):
        self.state = self.EJECTING
        logger.info("Step 1: Ejecting existing virtual media...")
        try:
            eject_virtual_media(self.session)
        except RedfishException as e:
            logger.warning(f"Failed to eject existing virtual media: {e}")
        self.session.cancel.sleep(self.settle_time)

        self.state = self.INSERTING
        logger.info("Step 2: Inserting new virtual media...")
        insert_virtual_media(self.session, self.image_url)
        self.session.cancel.sleep(self.settle_time)

        self.state = self.SETTING_BOOT_TARGET
        logger.info("Step 3: Setting boot device to virtual CD/DVD...")
        self.boot_target = set_virtual_cd_boot_enhanced(self.session)

        self.state = self.RESTARTING
        logger.info("Step 4: Restarting system...")
        restart_system(self.session)

        self.state = self.POLLING_POWER
        logger.info("Step 5: Waiting for the system to power on...")
        try:
            wait_for_power_state(
                self.session,
                "On",
                interval=self.poll_interval,
                max_attempts=self.poll_attempts,
            )
        except PowerStateTimeoutException as e:
            logger.warning(f"{e}; continuing anyway")
            return False

        return True
