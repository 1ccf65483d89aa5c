"""``target`` and ``target-blob``."""

import logging

from ltc.common.exceptions import LatticeError, PersistenceError
from ltc.config import BlobTargetInfo, Config
from ltc.exit_handler import ExitCode, ExitHandler
from ltc.target_verifier import BlobTargetVerifier, TargetVerifier
from ltc.terminal import TerminalUI

logger = logging.getLogger(__name__)

CONNECT_ERROR_MESSAGE = (
    "Error connecting to the receptor. "
    "Make sure your lattice target is set, and that lattice is up and running."
)
AUTHENTICATE_ERROR_MESSAGE = (
    "Could not authenticate with the receptor. Please run ltc target with the correct credentials."
)


class ConfigCommands:
    """
    Target configuration commands.

    Parameters
    ----------
    ui : TerminalUI
        Output terminal and prompts
    config : Config
        Loaded target config, saved on success
    target_verifier : TargetVerifier
        Receptor reachability and credential check
    blob_target_verifier : BlobTargetVerifier
        Blob store credential check
    exit_handler : ExitHandler
        Exit path
    """

    def __init__(
        self,
        ui: TerminalUI,
        config: Config,
        target_verifier: TargetVerifier,
        blob_target_verifier: BlobTargetVerifier,
        exit_handler: ExitHandler,
    ) -> None:
        self.ui = ui
        self.config = config
        self.target_verifier = target_verifier
        self.blob_target_verifier = blob_target_verifier
        self.exit_handler = exit_handler

    async def target(self, target: str | None) -> None:
        """
        Show or set the lattice target.

        A new target is verified before it is saved; when the receptor asks
        for credentials the user is prompted once.
        """
        if not target:
            self._print_target()
            return

        self.config.set_target(target)
        self.config.set_login("", "")

        if await self._verify():
            self._save()
            return

        username = await self.ui.prompt("Username")
        password = await self.ui.prompt_for_password("Password")
        try:
            self.config.set_login(username, password)
        except LatticeError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.BAD_TARGET)

        if not await self._verify():
            self.ui.say_line("Could not authorize target.")
            self.exit_handler.exit(ExitCode.BAD_TARGET)

        self._save()

    async def _verify(self) -> bool:
        result = await self.target_verifier.verify_target(self.config.receptor_url)
        if not result.reachable:
            self.ui.say_line(f"{CONNECT_ERROR_MESSAGE}  Underlying error: {result.error}")
            self.exit_handler.exit(ExitCode.BAD_TARGET)
        if result.error is not None:
            self.ui.say_line(f"Error verifying target: {result.error}")
            self.exit_handler.exit(ExitCode.BAD_TARGET)
        return result.authorized

    def _save(self) -> None:
        try:
            self.config.save()
        except PersistenceError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.FILE_SYSTEM_ERROR)
        self.ui.say_line("Api Location Set")

    def _print_target(self) -> None:
        if not self.config.target:
            self.ui.say_line("Target not set.")
            return
        self.ui.say_line(f"Target:\t\t{self.config.target}")
        if self.config.username:
            self.ui.say_line(f"Username:\t{self.config.username}")

    async def target_blob(self, endpoint: str | None) -> None:
        """Show or set the S3-compatible blob store."""
        if not endpoint:
            self._print_blob_target()
            return

        host, separator, port_string = endpoint.rpartition(":")
        if not separator or not host:
            self.ui.say_line("Error setting blob target: malformed target")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)
        try:
            port = int(port_string)
        except ValueError:
            port = 0
        if port <= 0 or port > 65535:
            self.ui.say_line("Error setting blob target: malformed port")
            self.exit_handler.exit(ExitCode.INVALID_SYNTAX)

        access_key = await self.ui.prompt("Access Key")
        secret_key = await self.ui.prompt_for_password("Secret Key")
        bucket_name = await self.ui.prompt("Bucket Name")

        blob_target = BlobTargetInfo(
            host=host, port=port, access_key=access_key, secret_key=secret_key, bucket_name=bucket_name
        )
        try:
            await self.blob_target_verifier.verify_blob_target(blob_target)
        except LatticeError as e:
            self.ui.say_line(f"Unable to verify blob store: {e}")
            self.exit_handler.exit(ExitCode.BAD_TARGET)

        self.config.set_blob_target(host, port, access_key, secret_key, bucket_name)
        try:
            self.config.save()
        except PersistenceError as e:
            self.ui.say_line(str(e))
            self.exit_handler.exit(ExitCode.FILE_SYSTEM_ERROR)
        self.ui.say_line("Blob Location Set")

    def _print_blob_target(self) -> None:
        blob_target = self.config.blob_target
        if not blob_target.is_set:
            self.ui.say_line("Blob target not set")
            return
        self.ui.say_line(f"Blob Target:\t{blob_target.host}:{blob_target.port}")
        self.ui.say_line(f"Access Key:\t{blob_target.access_key}")
        self.ui.say_line(f"Secret Key:\t{blob_target.secret_key}")
        self.ui.say_line(f"Bucket Name:\t{blob_target.bucket_name}")
