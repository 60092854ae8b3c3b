#!/usr/bin/env python3
"""
Refresh the GeoLite2-City database from MaxMind.

The previous database is kept as <db>.old; the new file is moved into place
only after the archive downloaded and extracted cleanly.

Usage:
    python update_db.py                          # license key from MAXMIND_LICENSE.txt
    python update_db.py --license-file key.txt --db-path /data/GeoLite2-City.mmdb
"""

import argparse
import logging
import os
import shutil
import tarfile
import tempfile
from typing import Optional

import requests

import config

logger = logging.getLogger(__name__)

DOWNLOAD_URL = "https://download.maxmind.com/app/geoip_download"
EDITION_ID = "GeoLite2-City"
DOWNLOAD_TIMEOUT = int(os.getenv("DOWNLOAD_TIMEOUT", "120"))


def read_license(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        key = f.read().strip()
    if not key:
        raise ValueError(f"license file {path} is empty")
    return key


def download_archive(license_key: str, dest: str, session: Optional[requests.Session] = None) -> None:
    """
    Download the database tarball to `dest`.

    Raises:
        RuntimeError: If the download fails
    """
    params = {"edition_id": EDITION_ID, "license_key": license_key, "suffix": "tar.gz"}
    http = session or requests
    try:
        with http.get(DOWNLOAD_URL, params=params, stream=True, timeout=DOWNLOAD_TIMEOUT) as r:
            r.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in r.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
    except requests.RequestException as e:
        raise RuntimeError(f"Failed to download {EDITION_ID}: {e}") from e


def extract_mmdb(archive_path: str, dest_dir: str) -> str:
    """
    Extract the .mmdb file from a MaxMind tarball.

    The archive holds a single dated directory (GeoLite2-City_YYYYMMDD/)
    containing the database next to license files.

    Returns:
        Path of the extracted database
    """
    with tarfile.open(archive_path, "r:gz") as tar:
        members = [
            m for m in tar.getmembers()
            if m.isfile() and os.path.basename(m.name) == f"{EDITION_ID}.mmdb"
        ]
        if not members:
            raise RuntimeError(f"{EDITION_ID}.mmdb not found in archive")
        member = members[0]
        extracted = os.path.join(dest_dir, f"{EDITION_ID}.mmdb")
        with tar.extractfile(member) as src, open(extracted, "wb") as dst:
            shutil.copyfileobj(src, dst)
    return extracted


def install_database(new_path: str, db_path: str) -> None:
    """Move `new_path` to `db_path`, keeping the current database as .old."""
    if os.path.exists(db_path):
        os.replace(db_path, db_path + ".old")
    shutil.move(new_path, db_path)


def update_database(license_key: str, db_path: str, session: Optional[requests.Session] = None) -> None:
    target_dir = os.path.dirname(os.path.abspath(db_path))
    with tempfile.TemporaryDirectory(dir=target_dir) as tmp:
        archive = os.path.join(tmp, f"{EDITION_ID}.mmdb.tar.gz")
        download_archive(license_key, archive, session)
        extracted = extract_mmdb(archive, tmp)
        install_database(extracted, db_path)
    logger.info("Installed %s at %s", EDITION_ID, db_path)


def main():
    parser = argparse.ArgumentParser(description="Download the latest GeoLite2-City database")
    parser.add_argument("--license-file", default="MAXMIND_LICENSE.txt", help="File holding the MaxMind license key")
    parser.add_argument("--db-path", default=config.GEOIP_DB_PATH, help="Where to install the database")
    args = parser.parse_args()

    config.setup_logging()
    try:
        update_database(read_license(args.license_file), args.db_path)
    except (OSError, ValueError, RuntimeError, tarfile.TarError) as e:
        raise SystemExit(f"Database update failed: {e}")


if __name__ == "__main__":
    main()
