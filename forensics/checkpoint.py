import datetime
import json
import logging
import os
from typing import Optional

from .formatters import to_jsonable
from .types import Report

STATUS_OK = "ok"
STATUS_ERROR = "error"


class JsonCheckpointSink:
    """
    Durable snapshots of a partial report, one JSON file per label.

    Saving the same label twice overwrites the earlier snapshot. Files are
    written to a temporary path and renamed into place.
    """

    def __init__(self, directory: str = "analysis_data"):
        self.directory = directory

    def path_for(self, label: str) -> str:
        return os.path.join(self.directory, f"{label}.json")

    def save(self, label: str, report: Report, error: Optional[BaseException] = None) -> Optional[str]:
        snapshot = {
            "label": label,
            "savedAt": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "status": STATUS_ERROR if error is not None else STATUS_OK,
            "error": f"{type(error).__name__}: {error}" if error is not None else None,
            "report": to_jsonable(report),
        }
        path = self.path_for(label)
        tmp = path + ".tmp"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            logging.error(f"Error saving checkpoint {label}: {e}")
            if os.path.exists(tmp):
                os.unlink(tmp)
            return None
        logging.info(f"✅ Checkpoint saved to {path}")
        return path

    def exists(self, label: str) -> bool:
        return os.path.exists(self.path_for(label))

    def load(self, label: str) -> Report:
        with open(self.path_for(label)) as f:
            snapshot = json.load(f)
        return Report.from_dict(snapshot["report"])
