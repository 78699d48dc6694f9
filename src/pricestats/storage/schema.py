# src/pricestats/storage/schema.py

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS stocks (
  symbol      TEXT NOT NULL,
  ts          TEXT NOT NULL,     -- date ISO 'YYYY-MM-DD' (ordre lexico = ordre chrono)
  open        REAL NOT NULL,
  high        REAL NOT NULL,
  low         REAL NOT NULL,
  close       REAL NOT NULL,
  volume      INTEGER NOT NULL,
  PRIMARY KEY (symbol, ts)
);

CREATE INDEX IF NOT EXISTS idx_stocks_ts ON stocks(ts);

CREATE TABLE IF NOT EXISTS statistics_cache (
  cache_key           TEXT PRIMARY KEY,   -- clé canonique (symboles triés | début | fin)
  symbols             TEXT NOT NULL,      -- tableau JSON des symboles
  start_date          TEXT,               -- NULL = non borné
  end_date            TEXT,               -- NULL = non borné
  stock_stats         TEXT NOT NULL,      -- JSON
  correlation_matrix  TEXT NOT NULL,      -- JSON
  latest_data_ts      TEXT,               -- marque de fraîcheur
  computed_at         TEXT NOT NULL       -- ISO8601 UTC
);

CREATE TABLE IF NOT EXISTS events (
  id          INTEGER PRIMARY KEY AUTOINCREMENT,
  ts_utc      TEXT NOT NULL,
  event_type  TEXT NOT NULL,                    -- 'RECORD_BAR', 'STATS_COMPUTED', ...
  payload     TEXT                              -- JSON texte optionnel
);

CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts_utc);
"""
