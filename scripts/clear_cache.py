from pathlib import Path
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from vault_analytics.cache_layer import CacheLayer
from vault_analytics.config import settings

if __name__ == '__main__':
    cache = CacheLayer(settings.cache_dir, settings.cache_db_path, settings.cache_ttl_seconds, settings.cache_stale_hours)
    print('Cleared', cache.invalidate_all(), 'entries')
