"""
Danbooru Harvester – Import Danbooru posts into a PostgreSQL database.

Supports:
  • Harvesting arbitrary post ID ranges in batches of 20 with a worker pool
  • Harvesting individual posts
  • Storing tags, favorites and pool memberships as relation tables
  • Downloading post files as <post-id>.<ext>
  • Resumable operation via idempotent inserts and skipping existing files
"""
