# anycdc

anycdc takes row changes from a source database and applies them to one or
more destination databases.

* **Sources:** MySQL/MariaDB binlog row events (`anycdc.mysql_reader.MySQLReader`)
  and PostgreSQL logical replication in the `pgoutput` format
  (`anycdc.postgres_reader.PostgresReader`).
* **Destinations:** MySQL (`anycdc.mysql_writer.MySQLWriter`) and PostgreSQL
  (`anycdc.postgres_writer.PostgresWriter`). Inserts become upserts
  (`ON DUPLICATE KEY UPDATE` / `ON CONFLICT ("<pk>") DO UPDATE SET`) and
  updates become `UPDATE ... WHERE <primary key> = ?`. Delete events produce
  no statement and are not applied.

Each task reads from one source connector and sends every event to all of its
writers at once. A failed write is tried up to three times; if any writer
still fails, the event is reported as failed.

## What the package does not include

The package holds no network client for the replication protocols themselves:

* `MySQLReader` reads binlog events through a *stream factory*: a callable
  taking the settings dict built by `prepare()` and a `BinlogPosition`, and
  returning an object with `get_event(timeout)` (a `BinlogEvent` or `None`),
  `next_position()` and `close()`. Set it per reader (`stream_factory=`) or
  for all readers with `MySQLReader.default_stream_factory`. Without one,
  `start()` raises `RuntimeError`.
* `PostgresReader` talks to the server through a *connection factory*: a
  callable taking a `Connector` and returning an object with `query_value`,
  `query_column`, `execute`, `execute_in_transaction`, `start_replication`,
  `receive_message`, `send_standby_status` and `close`. Set it per reader
  (`connection_factory=`) or with `PostgresReader.default_connection_factory`.
  Without one, `prepare()` raises `RuntimeError`.

The `anycdc` command does not set either factory, so its tasks only run once
such a factory has been installed (for example by a small script that assigns
the class attribute and then calls `anycdc.cli.main()`).

Writers and schema discovery connect through SQLAlchemy URLs:
`mysql+pymysql://...?charset=utf8mb4` for MySQL and
`postgresql://...?sslmode=disable` for PostgreSQL. The database drivers those
URLs name (PyMySQL, and SQLAlchemy's default PostgreSQL driver) are not
installed with this package and have to be installed separately.

## Running

```
anycdc --config-dir ./conf
```

`--config-dir` defaults to `./`. The process starts the admin API, prepares
and starts every task in the background, and saves every task's position
once a minute. On SIGINT, SIGTERM or SIGHUP it stops all tasks (saving their
positions first), waiting at most 30 seconds, and exits.

## Configuration layout

```
conf/
  config.yaml
  connectors.yaml
  tasks/
    orders.yaml
    ...
```

### config.yaml

```yaml
data_dir: ./data        # where <task name>.sv position files are kept
log_level: info         # read, but not applied to logging
admin:
  listen: ":9999"       # address of the admin HTTP API (default ":9999")
```

Messages go to the standard `logging` logger named `anycdc`; configure it as
you would any other logger.

### connectors.yaml

Every connector needs an `alias` that is unique in the file. Tasks refer to
connectors by this alias.

```yaml
connectors:
  - alias: source_mysql
    type: mysql
    host: localhost
    port: 3306
    username: user
    password: password
    database: shop
  - alias: replica_pg
    type: postgres
    host: localhost
    port: 5432
    username: user
    password: password
    database: shop
```

A missing or repeated alias raises `anycdc.config.ConfigError`.

### tasks/*.yaml

Every `.yaml` file below `tasks/` (searched recursively) is one task. A file
that cannot be read, or whose `name` repeats an earlier task, is skipped with
an error in the log.

A MySQL source takes a replica `server_id` and the tables to watch. Only row
writes and updates in the connector's `database` and in `tables` are
forwarded:

```yaml
name: orders_to_pg
reader:
  connector: source_mysql
  tables: [orders, customers]
  extras:
    server_id: "1001"
writers:
  - connector: replica_pg
```

A PostgreSQL source needs a publication and a replication slot. Both are
created when missing, and the publication's table list is brought in line
with `tables` each time the task is prepared:

```yaml
name: orders_to_mysql
reader:
  connector: replica_pg
  tables: [orders]
  extras:
    publication_name: anycdc_pub
    slot_name: anycdc_slot
writers:
  - connector: source_mysql
```

## Positions

`anycdc.state.State` keeps a task's position in `<data_dir>/<name>.sv`.

* MySQL: JSON such as `{"Name":"binlog.000003","Pos":154}`. On start the saved
  position is used; without one, the reader asks the server for
  `SHOW BINARY LOG STATUS`.
* PostgreSQL: the LSN as a JSON integer. Streaming starts from the slot's
  `restart_lsn`.

## Admin API

While running, the process accepts a JSON body (GET or POST) on `/admin/ctl`:

```json
{"cmd": "task_reload", "task": "orders_to_pg"}
```

| `cmd`          | effect                                                          |
|----------------|-----------------------------------------------------------------|
| `task_start`   | prepares the task and starts its reader in a background thread  |
| `task_stop`    | saves the position and stops the reader                         |
| `task_reload`  | re-reads the task file, stops the task if running, restarts it  |

Success answers `{"success": true}` (an unknown `cmd` is also a success and
does nothing). A failure answers status 500 and `{"error": "<message>"}`.
Other paths answer 404.

## Using the library

SQL for a change event:

```python
from anycdc.event import Event, EventType
from anycdc.sql_utils import event_to_sql

event = Event(
    type=EventType.UPDATE,
    schema="shop",
    table="orders",
    primary_key="id",
    primary_key_value=7,
    payload={"id": 7, "status": "paid"},
)
sql, params = event_to_sql(event, "`")
# UPDATE `orders` SET `status` = ? WHERE `id` = ?    params: ["paid", 7]
```

Other entry points:

* `anycdc.config.parse(directory)` loads the configuration;
  `anycdc.config.get_connector(alias)` returns a connector by alias.
* `anycdc.pgoutput.parse_xlog_data` and `parse_logical_message` decode
  replication messages; `convert_to_typed_data` decodes column text by type OID.
* `anycdc.common_rds.convert` turns `TypedData` column values into text a
  relational target accepts.
* `anycdc.task.Task` drives one reader and its writers;
  `anycdc.runtime.Runtime` manages several tasks by name.