#!/usr/bin/env python3

# openshift.py - SNO Hub Installer OpenShift installer libraries
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
import shutil

from snoinstaller.lib.config import MissingConfigurationError
from snoinstaller.lib.process import CommandFailedException, run_command


logger = logging.getLogger(__name__)


RELEASE_REPOSITORY = "quay.io/openshift-release-dev/ocp-release"

# Files copied from the source directory into the workspace
WORKDIR_CONFIG_FILES = ["agent-config.yaml", "install-config.yaml"]
WORKDIR_CONFIG_DIR = "openshift"


#
# Release functions
#
def get_release_image(config):
    return f"{RELEASE_REPOSITORY}:{config['openshift_version']}-x86_64"


def check_registry_auth(config):
    auth_file = config["openshift_registry_auth_file"]
    if not os.path.isfile(auth_file):
        raise MissingConfigurationError("Registry auth file", auth_file)
    return auth_file


def get_release_digest(config, cancel):
    """
    Resolve the release image to its pinned digest via "oc adm release info"
    """
    auth_file = check_registry_auth(config)
    cmd = [
        "oc",
        "adm",
        "release",
        "info",
        get_release_image(config),
        "--registry-config",
        auth_file,
    ]
    output = run_command(cmd, cancel)

    # Looking for a line like "Pull From: quay.io/openshift-release-dev/ocp-release@sha256:..."
    for line in output.splitlines():
        if "Pull From:" in line:
            fields = line.split()
            if len(fields) >= 3:
                return fields[2]

    raise CommandFailedException(cmd, returncode=0, output=output, error="could not find release digest in output")


def extract_installer(config, cancel):
    """
    Extract the openshift-install binary matching the configured release
    """
    logger.info("Extracting OpenShift installer...")
    auth_file = check_registry_auth(config)

    release_digest = get_release_digest(config, cancel)
    logger.info(f"Release digest: {release_digest}")

    run_command(
        [
            "oc",
            "adm",
            "release",
            "extract",
            "-a",
            auth_file,
            "--command=openshift-install",
            release_digest,
        ],
        cancel,
    )
    logger.info("OpenShift installer extracted successfully")


#
# Workspace functions
#
def prepare_workdir(config):
    """
    Recreate the workspace and populate it from the source directory
    """
    workdir = config["paths_workdir"]
    source_dir = config["paths_source_dir"]
    logger.info("Preparing work directory...")

    # Everything must be present before the old workspace is thrown away
    source_config_dir = os.path.join(source_dir, WORKDIR_CONFIG_DIR)
    if not os.path.isdir(source_config_dir):
        raise MissingConfigurationError("Source openshift directory", source_config_dir)
    for filename in WORKDIR_CONFIG_FILES:
        source_file = os.path.join(source_dir, filename)
        if not os.path.isfile(source_file):
            raise MissingConfigurationError("Configuration file", source_file)

    if os.path.exists(workdir):
        logger.info(f"Cleaning existing {workdir}...")
        shutil.rmtree(workdir)
    os.makedirs(workdir)

    dest_config_dir = os.path.join(workdir, WORKDIR_CONFIG_DIR)
    logger.info(f"Copying {source_config_dir} -> {dest_config_dir}")
    shutil.copytree(source_config_dir, dest_config_dir)

    for filename in WORKDIR_CONFIG_FILES:
        source_file = os.path.join(source_dir, filename)
        dest_file = os.path.join(workdir, filename)
        logger.info(f"Copying {source_file} -> {dest_file}")
        shutil.copy2(source_file, dest_file)

    logger.info(f"Work directory {workdir} prepared successfully")


def check_installer(config):
    installer_path = config["paths_installer_path"]
    if not os.path.isfile(installer_path):
        raise MissingConfigurationError("openshift-install binary", installer_path)
    return installer_path


def create_agent_image(config, cancel):
    """
    Have openshift-install build the agent ISO inside the workspace
    """
    logger.info("Creating agent image...")
    installer_path = check_installer(config)
    os.chmod(installer_path, 0o755)

    run_command(
        [
            installer_path,
            "agent",
            "create",
            "image",
            "--dir",
            config["paths_workdir"],
            "--log-level",
            "debug",
        ],
        cancel,
    )
    logger.info("Agent image created successfully")


def wait_for_install_complete(config, cancel):
    """
    Block on openshift-install until the cluster reports installation complete
    """
    logger.info("Waiting for installation to complete...")
    installer_path = check_installer(config)

    env = dict(os.environ)
    env["KUBECONFIG"] = os.path.abspath(
        os.path.join(config["paths_workdir"], "auth", "kubeconfig")
    )

    run_command(
        [
            installer_path,
            "agent",
            "wait-for",
            "install-complete",
            "--dir",
            config["paths_workdir"],
        ],
        cancel,
        env=env,
    )
    logger.info("Installation completed successfully")
