#!/usr/bin/env python3

# webcache.py - SNO Hub Installer image web cache
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

import flask
import hashlib
import logging
import os
import sys

from flask_restful import Resource, Api


logger = logging.getLogger(__name__)


DEFAULT_ADDRESS = "0.0.0.0"
DEFAULT_PORT = 9090

# One day; the image only changes when a new one is published
CACHE_MAX_AGE = 86400


#
# Helper functions
#
def get_file_md5(path, blocksize=1024 * 1024):
    """
    Hash the file in blocks so multi-GB images never sit in memory
    """
    md5 = hashlib.md5()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(blocksize), b""):
            md5.update(block)
    return md5.hexdigest()


#
# App factory
#
def create_app(image_path):
    """
    Create the Flask app serving the single file at image_path

    The ETag is computed once here, so replacing the file means restarting.
    """
    image_path = os.path.abspath(image_path)
    image_name = os.path.basename(image_path)

    logger.info(f"Computing MD5 of {image_path}...")
    image_md5 = get_file_md5(image_path)
    image_mtime = os.path.getmtime(image_path)
    logger.info(f"Serving {image_name} with ETag \"{image_md5}\"")

    app = flask.Flask(__name__)
    blueprint = flask.Blueprint("api", __name__, url_prefix="")
    api = Api(blueprint)

    #
    # API routes
    #
    class API_Root(Resource):
        def get(self):
            """
            Return basic details of the cache
            ---
            tags:
              - root
            responses:
              200:
                description: OK
                schema:
                  type: object
                  id: Message
                  properties:
                    message:
                      type: string
                      description: A text message describing the cache
                    file:
                      type: string
                      description: The path the cached file is served at
                    etag:
                      type: string
                      description: The MD5 sum of the cached file
            """
            return {
                "message": "sno-webcache",
                "file": f"/{image_name}",
                "etag": image_md5,
            }, 200

    api.add_resource(API_Root, "/")

    class API_Image(Resource):
        def get(self):
            """
            Return the cached file
            ---
            tags:
              - image
            responses:
              200:
                description: OK
              206:
                description: Partial content for a Range request
              304:
                description: Not modified; the If-None-Match ETag still matches
              404:
                description: Not found
                schema:
                  type: object
                  id: Message
            """
            if not os.path.isfile(image_path):
                logger.warning(f"{image_path} no longer exists")
                return {"message": f"{image_name} not found"}, 404

            return flask.send_file(
                image_path,
                mimetype="application/octet-stream",
                as_attachment=True,
                download_name=image_name,
                conditional=True,
                etag=image_md5,
                last_modified=image_mtime,
                max_age=CACHE_MAX_AGE,
            )

    api.add_resource(API_Image, f"/{image_name}")

    app.register_blueprint(blueprint)
    return app


#
# Entrypoint
#
def entrypoint():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if len(sys.argv) > 1:
        image_path = sys.argv[1]
    else:
        image_path = input("Path of the file to serve: ").strip()

    if not os.path.isfile(image_path):
        logger.error(f"File not found: {image_path}")
        sys.exit(1)

    address = os.environ.get("SNO_WEBCACHE_ADDRESS", DEFAULT_ADDRESS)
    try:
        port = int(os.environ.get("SNO_WEBCACHE_PORT", DEFAULT_PORT))
    except ValueError:
        logger.error("SNO_WEBCACHE_PORT must be a number")
        sys.exit(1)

    app = create_app(image_path)

    # Start up the HTTP server
    app.run(address, port, threaded=True, use_reloader=False)


if __name__ == "__main__":
    entrypoint()
