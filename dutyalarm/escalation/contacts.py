"""Duty roster management for escalations."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from dutyalarm.config import settings
from dutyalarm.utils.logging import get_logger
from dutyalarm.utils.validation import mask_phone_number, normalize_phone, validate_phone

logger = get_logger(__name__)


class DutyRoster:
    """Provides the phone numbers of the officers currently on duty.

    The roster is a JSON file of the form::

        {
            "version": 1,
            "duty_officers": [
                {"name": "Alice", "phone": "+15550100", "active": true}
            ]
        }

    The file is re-read whenever it changes on disk. Without a file the
    ``DUTY_PHONE_NUMBERS`` setting is used.
    """

    def __init__(
        self,
        contacts_file: Optional[str] = None,
        fallback_numbers: Optional[List[str]] = None
    ):
        self.contacts_file = contacts_file or settings.DUTY_CONTACTS_FILE
        self.fallback_numbers = (
            fallback_numbers if fallback_numbers is not None else settings.DUTY_PHONE_NUMBERS
        )
        self.contacts: Dict[str, Any] = {}
        self.source = "settings"
        self._loaded_mtime: Optional[float] = None
        self.load_contacts()

    def load_contacts(self) -> None:
        """Load duty officers from the JSON file.

        A missing, unreadable or malformed file falls back to the configured
        numbers.
        """
        contacts_path = Path(self.contacts_file)
        try:
            if contacts_path.exists():
                with open(contacts_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                self._loaded_mtime = contacts_path.stat().st_mtime

                if self._is_roster(data):
                    self.contacts = data
                    self.source = self.contacts_file
                    logger.info("Loaded duty roster", file=self.contacts_file)
                else:
                    logger.error("Malformed duty roster, using configured numbers",
                                 file=self.contacts_file)
                    self._use_default_contacts()
            else:
                logger.warning("Duty roster file not found, using configured numbers",
                               file=self.contacts_file)
                self._use_default_contacts()
                self._loaded_mtime = None

        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading duty roster", file=self.contacts_file, error=str(e))
            self._use_default_contacts()
            self._loaded_mtime = None

    @staticmethod
    def _is_roster(data: Any) -> bool:
        return isinstance(data, dict) and isinstance(data.get("duty_officers"), list)

    def _use_default_contacts(self) -> None:
        self.contacts = self._get_default_contacts()
        self.source = "settings"

    def _reload_if_changed(self) -> None:
        contacts_path = Path(self.contacts_file)
        try:
            mtime = contacts_path.stat().st_mtime if contacts_path.exists() else None
        except OSError:
            mtime = None

        if mtime != self._loaded_mtime:
            self.load_contacts()

    async def list_on_call_contacts(self) -> List[str]:
        """Get the phone numbers of active duty officers.

        Invalid numbers are skipped and duplicates collapsed. An empty list
        is a valid answer.
        """
        self._reload_if_changed()

        numbers: List[str] = []
        for officer in self.contacts.get("duty_officers", []):
            if not isinstance(officer, dict):
                logger.warning("Skipping malformed duty officer entry", entry=repr(officer))
                continue

            if not officer.get("active", True):
                continue

            phone = officer.get("phone", "")
            if not validate_phone(phone):
                logger.warning("Skipping invalid duty phone number",
                               officer=officer.get("name"),
                               phone=mask_phone_number(phone))
                continue

            normalized = normalize_phone(phone)
            if normalized not in numbers:
                numbers.append(normalized)

        logger.info("Retrieved duty contacts", contact_count=len(numbers))
        return numbers

    def _get_default_contacts(self) -> Dict[str, Any]:
        """Build a roster from the configured fallback numbers."""
        return {
            "version": 1,
            "duty_officers": [
                {"name": f"Duty officer {i + 1}", "phone": number, "active": True}
                for i, number in enumerate(self.fallback_numbers)
            ]
        }

    def update_contacts(self, new_contacts: Dict[str, Any]) -> bool:
        """Validate and persist a new roster."""
        if not self._validate_contacts(new_contacts):
            return False

        try:
            contacts_path = Path(self.contacts_file)
            contacts_path.parent.mkdir(parents=True, exist_ok=True)

            with open(contacts_path, 'w', encoding='utf-8') as f:
                json.dump(new_contacts, f, indent=2)

            self.contacts = new_contacts
            self.source = self.contacts_file
            self._loaded_mtime = contacts_path.stat().st_mtime
            logger.info("Updated duty roster", file=self.contacts_file)
            return True

        except OSError as e:
            logger.error("Error updating duty roster", file=self.contacts_file, error=str(e))
            return False

    def _validate_contacts(self, contacts: Dict[str, Any]) -> bool:
        """Validate roster structure."""
        if not self._is_roster(contacts):
            logger.error("Roster validation failed: 'duty_officers' must be a list")
            return False

        for officer in contacts["duty_officers"]:
            if not isinstance(officer, dict):
                logger.error("Invalid duty officer definition", officer=officer)
                return False

            if "name" not in officer:
                logger.error("Duty officer missing name", officer=officer)
                return False

            if not validate_phone(officer.get("phone", "")):
                logger.error(f"Duty officer has invalid phone: {officer['name']}")
                return False

        return True

    def get_contacts_summary(self) -> Dict[str, Any]:
        """Get summary of roster configuration."""
        officers = self.contacts.get("duty_officers", [])
        return {
            "source": self.source,
            "total_officers": len(officers),
            "active_officers": len([
                o for o in officers if isinstance(o, dict) and o.get("active", True)
            ]),
        }
