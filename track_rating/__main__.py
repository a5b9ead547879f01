"""Entry point for batch event ingestion"""
import json
import logging
import os
import sys
import traceback

from track_rating.config import Settings
from track_rating.db import Database
from track_rating.exceptions import SubmissionExhaustedError
from track_rating.service import TrackRatingService
from track_rating.utils.json_encoder import json_dumps

INPUT_FILE = "events.json"
OUTPUT_FILE = "results.json"

logger = logging.getLogger(__name__)

def load_submission(input_dir: str) -> dict:
    """
    Read a submission from INPUT_DIR/events.json.

    Either a bare list of event descriptors or
    {"user_id": "...", "events": [...]}.
    """
    input_path = os.path.join(input_dir, INPUT_FILE)
    if not os.path.isfile(input_path):
        raise FileNotFoundError(f"No submission found at {input_path}")
    with open(input_path, 'r', encoding='utf-8') as f:
        payload = json.load(f)
    if isinstance(payload, list):
        return {'user_id': None, 'events': payload}
    if not isinstance(payload, dict) or not isinstance(payload.get('events'), list):
        raise ValueError(f"{input_path} must hold a list of events or an object with an 'events' list")
    return {'user_id': payload.get('user_id'), 'events': payload['events']}

def write_output(output_dir: str, body) -> str:
    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, OUTPUT_FILE)
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(json_dumps(body, indent=2))
    return output_path

def run() -> None:
    """Apply the events in INPUT_DIR and write the itemized result to OUTPUT_DIR."""
    settings = Settings()
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s %(name)s %(levelname)s %(message)s')
    db = Database()
    try:
        db.init(settings)

        # Log config (excluding sensitive data)
        logger.info("Using configuration:")
        safe_config = settings.model_dump(exclude={'DATABASE_URL', 'DB_PASSWORD'})
        logger.info(json.dumps(safe_config, indent=2))

        submission = load_submission(settings.INPUT_DIR)
        service = TrackRatingService(settings, db)
        result = service.process_batch(submission['events'], user_id=submission['user_id'])

        output_path = write_output(settings.OUTPUT_DIR, result)
        logger.info(f"Batch complete: {result.processed_count} processed, {result.failed_count} failed -> {output_path}")

    except SubmissionExhaustedError as e:
        logger.error(f"{e}")
        write_output(settings.OUTPUT_DIR, {
            'error': e.error_type,
            'message': str(e),
            'attempts': e.attempts,
            'last_result': e.last_result
        })
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error during batch ingestion: {e}")
        traceback.print_exc()
        sys.exit(1)
    finally:
        db.dispose()

if __name__ == "__main__":
    run()
