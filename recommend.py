import os
from track_rating.config import Settings
from track_rating.db import Database
from track_rating.service import TrackRatingService
from track_rating.utils.json_encoder import json_dumps

settings = Settings()

# Initialize database
db = Database()
db.init(settings)

# Create service instance
service = TrackRatingService(settings, db)

# Recommend
exclude = [track_id for track_id in os.environ.get('EXCLUDE_IDS', '').split(',') if track_id]
response = service.recommend(
    seed_track_id=os.environ.get('SEED_TRACK_ID') or None,
    genre=os.environ.get('GENRE') or None,
    exclude_ids=exclude,
    limit=int(os.environ.get('LIMIT', '10'))
)

# Print results
print(json_dumps(response, indent=2))
