"""Storage collaborators the phases act on.

Every provider exposes the same small contract (create / delete / list /
create folder) with paths relative to the provider root, and raises
``ProviderError`` on any failure.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import keyring
from keyring.errors import KeyringError

from .config import Config
from .errors import ProviderError

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class StorageProvider:
    name = "storage"
    display_name = "STORAGE"
    # whether deleting through the API is mirrored into the local sync folder
    supports_local_delete_phase = False
    # whether the local phase needs a fresh browser tab (and script) of its own
    reinstrument_for_local = False

    def create(self, relative_path: str, content: str) -> None:
        raise NotImplementedError

    def delete(self, relative_path: str) -> None:
        raise NotImplementedError

    def list_entries(self, folder_path: str) -> List[str]:
        raise NotImplementedError

    def create_folder(self, folder_path: str) -> None:
        raise NotImplementedError

    def ensure_folder(self, folder_path: str) -> None:
        parent, name = os.path.split(folder_path.strip("/"))
        if name not in self.list_entries(parent):
            logging.info(f"Creating new folder '{folder_path}'")
            self.create_folder(folder_path)

    def web_url(self, folder_path: str) -> Optional[str]:
        return None

    def local_test_folder(self, local_root: str, test_folder_path: str) -> str:
        return os.path.join(os.path.expanduser(local_root), test_folder_path.strip("/"))

    def _fail(self, operation: str, path: str, e: Exception) -> ProviderError:
        return ProviderError(self.display_name, operation, path, str(e) or e.__class__.__name__)


class LocalFolderProvider(StorageProvider):
    """Plain filesystem writes under ``root`` (the local sync client folder)."""

    name = "local"
    display_name = "LOCAL DRIVE"

    def __init__(self, root: str):
        self.root = os.path.abspath(os.path.expanduser(root))

    def _abs(self, relative_path: str) -> str:
        return os.path.join(self.root, relative_path.strip("/"))

    def create(self, relative_path: str, content: str) -> None:
        path = self._abs(relative_path)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
        except OSError as e:
            raise self._fail("create", relative_path, e) from e

    def delete(self, relative_path: str) -> None:
        try:
            os.remove(self._abs(relative_path))
        except OSError as e:
            raise self._fail("delete", relative_path, e) from e

    def list_entries(self, folder_path: str) -> List[str]:
        try:
            return sorted(os.listdir(self._abs(folder_path)))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise self._fail("list", folder_path, e) from e

    def create_folder(self, folder_path: str) -> None:
        try:
            os.makedirs(self._abs(folder_path), exist_ok=True)
        except OSError as e:
            raise self._fail("create folder", folder_path, e) from e


class DropboxProvider(StorageProvider):
    name = "dropbox"
    display_name = "DROPBOX"
    supports_local_delete_phase = True

    def __init__(self, client: Any):
        self.client = client

    @staticmethod
    def _api_path(path: str) -> str:
        path = path.strip("/")
        return f"/{path}" if path else ""

    def create(self, relative_path: str, content: str) -> None:
        try:
            self.client.files_upload(content.encode("utf-8"), self._api_path(relative_path))
        except Exception as e:
            raise self._fail("upload", relative_path, e) from e

    def delete(self, relative_path: str) -> None:
        try:
            self.client.files_delete_v2(self._api_path(relative_path))
        except Exception as e:
            raise self._fail("delete", relative_path, e) from e

    def list_entries(self, folder_path: str) -> List[str]:
        try:
            result = self.client.files_list_folder(self._api_path(folder_path))
            names = [entry.name for entry in result.entries]
            while result.has_more:
                result = self.client.files_list_folder_continue(result.cursor)
                names.extend(entry.name for entry in result.entries)
            return names
        except Exception as e:
            raise self._fail("list", folder_path, e) from e

    def create_folder(self, folder_path: str) -> None:
        try:
            self.client.files_create_folder_v2(self._api_path(folder_path))
        except Exception as e:
            raise self._fail("create folder", folder_path, e) from e

    def web_url(self, folder_path: str) -> Optional[str]:
        return f"https://www.dropbox.com/home{self._api_path(folder_path)}"


class GoogleDriveProvider(StorageProvider):
    """Drive access through PyDrive2; paths are resolved title by title."""

    name = "google_drive"
    display_name = "GOOGLE DRIVE"
    # Drive's desktop client does not pull web changes down, so local writes
    # go to a separate folder that only syncs upwards
    reinstrument_for_local = True

    def __init__(self, drive: Any):
        self.drive = drive
        self._folder_ids: Dict[str, str] = {"": "root"}

    def _children(self, parent_id: str, title: Optional[str] = None, folders_only: bool = False) -> List[Any]:
        query = f"'{parent_id}' in parents and trashed = false"
        if title is not None:
            escaped = title.replace("\\", "\\\\").replace("'", "\\'")
            query += f" and title = '{escaped}'"
        if folders_only:
            query += f" and mimeType = '{FOLDER_MIME_TYPE}'"
        return self.drive.ListFile({"q": query}).GetList()

    def _folder_id(self, folder_path: str) -> str:
        folder_path = folder_path.strip("/")
        if folder_path in self._folder_ids:
            return self._folder_ids[folder_path]
        parent, name = os.path.split(folder_path)
        parent_id = self._folder_id(parent)
        found = self._children(parent_id, title=name, folders_only=True)
        if not found:
            raise FileNotFoundError(f"folder '{folder_path}' does not exist")
        self._folder_ids[folder_path] = found[0]["id"]
        return found[0]["id"]

    def _file(self, relative_path: str) -> Any:
        parent, name = os.path.split(relative_path.strip("/"))
        found = self._children(self._folder_id(parent), title=name)
        if not found:
            raise FileNotFoundError(f"file '{relative_path}' does not exist")
        return found[0]

    def create(self, relative_path: str, content: str) -> None:
        parent, name = os.path.split(relative_path.strip("/"))
        try:
            f = self.drive.CreateFile({"title": name, "mimeType": "text/plain",
                                       "parents": [{"id": self._folder_id(parent)}]})
            f.SetContentString(content)
            f.Upload()
        except Exception as e:
            raise self._fail("upload", relative_path, e) from e

    def delete(self, relative_path: str) -> None:
        try:
            self._file(relative_path).Delete()
        except Exception as e:
            raise self._fail("delete", relative_path, e) from e

    def list_entries(self, folder_path: str) -> List[str]:
        try:
            return [item["title"] for item in self._children(self._folder_id(folder_path))]
        except FileNotFoundError:
            return []
        except Exception as e:
            raise self._fail("list", folder_path, e) from e

    def create_folder(self, folder_path: str) -> None:
        folder_path = folder_path.strip("/")
        parent, name = os.path.split(folder_path)
        try:
            folder = self.drive.CreateFile({"title": name, "mimeType": FOLDER_MIME_TYPE,
                                            "parents": [{"id": self._folder_id(parent)}]})
            folder.Upload()
            self._folder_ids[folder_path] = folder["id"]
        except Exception as e:
            raise self._fail("create folder", folder_path, e) from e

    def web_url(self, folder_path: str) -> Optional[str]:
        folder_id = self._folder_ids.get(folder_path.strip("/"))
        if not folder_id:
            return "https://drive.google.com/drive/u/0"
        return f"https://drive.google.com/drive/u/0/folders/{folder_id}"

    def local_test_folder(self, local_root: str, test_folder_path: str) -> str:
        return os.path.join(os.path.expanduser(local_root), f"Local.{test_folder_path.strip('/')}")


# --- construction from config ---

def _load_dropbox_token(config: Config) -> str:
    token = config.dropbox_access_token
    if not token and config.use_keyring:
        try:
            token = keyring.get_password(config.keyring_service, "dropbox")
            if token: logging.info("Loaded Dropbox token from keyring")
        except KeyringError as e:
            logging.warning(f"Keyring get failed: {e}")
    if not token:
        try:
            with open(os.path.expanduser(config.dropbox_config_file), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RuntimeError(f"Dropbox token missing: set DROPBOX_ACCESS_TOKEN or provide {config.dropbox_config_file}") from e
        token = data.get("access_token")
        if not token:
            raise RuntimeError("access_token attribute is missing")
        if config.use_keyring:
            try:
                keyring.set_password(config.keyring_service, "dropbox", token)
                logging.info("Stored Dropbox token in keyring")
            except KeyringError as e:
                logging.warning(f"Keyring set failed: {e}")
    return token


def connect_dropbox(config: Config) -> DropboxProvider:
    # Lazy import so config-only actions do not need the SDK loaded
    import dropbox  # noqa: PLC0415
    client = dropbox.Dropbox(oauth2_access_token=_load_dropbox_token(config))
    return DropboxProvider(client)


def connect_google_drive(config: Config) -> GoogleDriveProvider:
    from pydrive2.auth import GoogleAuth  # noqa: PLC0415
    from pydrive2.drive import GoogleDrive  # noqa: PLC0415
    if config.google_drive_settings_file:
        gauth = GoogleAuth(settings_file=config.google_drive_settings_file)
    else:
        gauth = GoogleAuth()
    credentials_file = os.path.expanduser(config.google_drive_credentials_file)
    gauth.LoadCredentialsFile(credentials_file)
    if gauth.credentials is None:
        # first run: prompts on the command line, then cached below
        gauth.CommandLineAuth()
    elif gauth.access_token_expired:
        gauth.Refresh()
    else:
        gauth.Authorize()
    gauth.SaveCredentialsFile(credentials_file)
    return GoogleDriveProvider(GoogleDrive(gauth))


def build_provider(config: Config) -> StorageProvider:
    if config.provider == "dropbox":
        return connect_dropbox(config)
    if config.provider == "google_drive":
        return connect_google_drive(config)
    raise ValueError(f"Unknown provider: {config.provider}")
