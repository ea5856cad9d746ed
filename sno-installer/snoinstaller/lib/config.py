#!/usr/bin/env python3

# config.py - SNO Hub Installer configuration libraries
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
import yaml

from jinja2 import Template


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE = "idrac_config.yaml"

TEMPLATE_FILE = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "templates",
    "idrac_config.yaml.j2",
)

# Values for the generated template and for any optional key left out
DEFAULT_CONFIG = {
    "idrac_ip": "192.168.1.228",
    "idrac_username": "root",
    "idrac_verify_ssl": False,
    "idrac_timeout": 30,
    "idrac_poll_interval": 10,
    "idrac_poll_attempts": 30,
    "idrac_settle_time": 10,
    "openshift_version": "4.16.45",
    "openshift_cluster_name": "sno-hub",
    "openshift_registry_auth_file": "./config.json",
    "remote_user": "rock",
    "remote_host": "192.168.1.21",
    "remote_path": "/apps/webcache/OSs/",
    "paths_workdir": "./workdir",
    "paths_source_dir": "./abi-master-0",
    "paths_ssh_key_path": "~/.ssh/id_ed25519.pub",
    "paths_installer_path": "./openshift-install",
    "logging_debug": False,
    "logging_log_file": "logs/openshift_sno_hub_install.log",
}


##########################################################
# Exceptions
##########################################################


class MalformedConfigurationError(Exception):
    """
    An exception when parsing the installer configuration file
    """

    def __init__(self, error=None):
        self.msg = f"ERROR: Configuration file is malformed: {error}"

    def __str__(self):
        return str(self.msg)


class MissingConfigurationError(Exception):
    """
    An exception when a file or directory the configuration points at is absent
    """

    def __init__(self, description, path):
        self.description = description
        self.path = path
        self.msg = f"ERROR: {description} not found: {path}"

    def __str__(self):
        return str(self.msg)


##########################################################
# Helper Functions
##########################################################


def strtobool(stringv):
    if stringv is None:
        return False
    if isinstance(stringv, bool):
        return bool(stringv)
    return str(stringv).strip().lower() in ["y", "yes", "t", "true", "on", "1"]


def to_number(value, name, cast=int):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise MalformedConfigurationError(f"Value of '{name}' must be a number, not '{value}'")


def default_iso_url(remote_host):
    return f"http://{remote_host}:8080/OSs/agent.x86_64.iso"


##########################################################
# Configuration Generation
##########################################################


def get_config_path():
    return os.environ.get("SNO_INSTALLER_CONFIG_FILE", DEFAULT_CONFIG_FILE)


def render_default_config():
    with open(TEMPLATE_FILE, "r") as tfh:
        template = Template(tfh.read())

    return template.render(
        remote_iso_url=default_iso_url(DEFAULT_CONFIG["remote_host"]),
        **DEFAULT_CONFIG,
    )


def write_default_config(config_file):
    """
    Write the default settings template to config_file
    """
    config_dir = os.path.dirname(config_file)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)

    with open(config_file, "w") as cfgfile:
        cfgfile.write(render_default_config())
        cfgfile.write("\n")

    return config_file


##########################################################
# Configuration Parsing
##########################################################


def read_config(config_file=None):
    if config_file is None:
        config_file = get_config_path()

    if not os.path.exists(config_file):
        logger.warning(f"Configuration file '{config_file}' not found; creating a default one")
        write_default_config(config_file)

    logger.info(f"Loading configuration from file '{config_file}'")

    # Load the YAML config file
    with open(config_file, "r") as cfgfile:
        try:
            o_config = yaml.load(cfgfile, Loader=yaml.SafeLoader)
        except yaml.YAMLError as e:
            raise MalformedConfigurationError(f"Failed to parse configuration file: {e}")

    if not isinstance(o_config, dict):
        raise MalformedConfigurationError("Top level is not a mapping")

    # Create the configuration dictionary
    config = dict()
    config["config_file"] = config_file

    # Get the first-level categories
    try:
        o_idrac = o_config["idrac"]
        o_openshift = o_config["openshift"]
        o_remote = o_config["remote"]
        o_paths = o_config["paths"]
    except KeyError as k:
        raise MalformedConfigurationError(f"Missing first-level category {k}")
    o_logging = o_config.get("logging") or dict()

    for category, o_category in [
        ("idrac", o_idrac),
        ("openshift", o_openshift),
        ("remote", o_remote),
        ("paths", o_paths),
        ("logging", o_logging),
    ]:
        if not isinstance(o_category, dict):
            raise MalformedConfigurationError(f"Category '{category}' is not a mapping")

    # Get the required keys
    for category, o_category, keys in [
        ("idrac", o_idrac, ["ip", "username", "password"]),
        ("openshift", o_openshift, ["version", "cluster_name"]),
        ("remote", o_remote, ["user", "host", "path"]),
    ]:
        for key in keys:
            try:
                value = o_category[key]
            except KeyError:
                raise MalformedConfigurationError(
                    f"Missing second-level key '{key}' under '{category}'"
                )
            if value is None or str(value).strip() == "":
                raise MalformedConfigurationError(
                    f"Value of '{category}.{key}' is required; edit '{config_file}' and set it"
                )
            config[f"{category}_{key}"] = str(value)

    # Get the optional iDRAC keys
    config["idrac_verify_ssl"] = strtobool(
        o_idrac.get("verify_ssl", DEFAULT_CONFIG["idrac_verify_ssl"])
    )
    for key, cast in [
        ("timeout", float),
        ("poll_interval", float),
        ("poll_attempts", int),
        ("settle_time", float),
    ]:
        config[f"idrac_{key}"] = to_number(
            o_idrac.get(key, DEFAULT_CONFIG[f"idrac_{key}"]), f"idrac.{key}", cast
        )
    if config["idrac_poll_attempts"] < 1:
        raise MalformedConfigurationError("Value of 'idrac.poll_attempts' must be at least 1")

    # Get the optional OpenShift keys
    config["openshift_registry_auth_file"] = os.path.expanduser(
        o_openshift.get("registry_auth_file")
        or DEFAULT_CONFIG["openshift_registry_auth_file"]
    )

    # Get the optional remote keys
    config["remote_iso_url"] = o_remote.get("iso_url") or default_iso_url(
        config["remote_host"]
    )
    config["remote_password"] = o_remote.get("password") or config["idrac_password"]

    # Get the path keys
    for key in ["workdir", "source_dir", "ssh_key_path", "installer_path"]:
        config[f"paths_{key}"] = os.path.expanduser(
            o_paths.get(key) or DEFAULT_CONFIG[f"paths_{key}"]
        )

    # Get the logging keys
    config["logging_debug"] = strtobool(
        o_logging.get("debug", DEFAULT_CONFIG["logging_debug"])
    )
    config["logging_log_file"] = os.path.expanduser(
        o_logging.get("log_file") or DEFAULT_CONFIG["logging_log_file"]
    )

    return config


def get_iso_path(config):
    return os.path.join(config["paths_workdir"], "agent.x86_64.iso")


def get_ssh_public_key_path(config):
    key_path = config["paths_ssh_key_path"]
    if key_path.endswith(".pub"):
        return key_path
    return f"{key_path}.pub"


def get_ssh_private_key_path(config):
    return get_ssh_public_key_path(config)[: -len(".pub")]


def get_lock_path(config):
    return f"{config['paths_workdir'].rstrip('/')}.lock"
