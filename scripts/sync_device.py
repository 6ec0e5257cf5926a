"""
Script para operar el almacén local de un dispositivo desde la terminal.

Uso:
    python scripts/sync_device.py sync
    python scripts/sync_device.py sync --server http://10.0.0.5:8000 --user enum-01
    python scripts/sync_device.py pending
    python scripts/sync_device.py logs --limit 10 --token <JWT>

Requisitos:
    - LOCAL_DATABASE_URL apunta al archivo SQLite del dispositivo
    - El servidor debe estar accesible para `sync` y `logs`
"""

import argparse
import sys
from pathlib import Path

# Agregar el directorio raíz al path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import asyncio

from agrisync.client.exceptions import SyncClientError
from agrisync.client.store import LocalRecordStore
from agrisync.client.sync_client import SyncClient


async def run_sync(client: SyncClient) -> int:
    try:
        result = await client.sync()
    except SyncClientError as exc:
        print(f"ERROR: {exc.message}")
        return 1

    print(result.message or "Sincronización completada")
    print(f"  Enviadas:    {result.submitted}")
    print(f"  Marcadas:    {result.marked_synced}")
    print(f"  Conflictos:  {result.conflict_count}")
    for failure in result.failures:
        print(f"  ✗ {failure.client_id}: {failure.error}")
    return 0


async def show_pending(store: LocalRecordStore) -> int:
    pending = await store.pending()
    stats = await store.statistics()
    print(f"{stats['pending']} pendientes de {stats['total']} encuestas "
          f"(último sync: {stats['last_sync'] or 'nunca'})")
    for survey in pending:
        print(f"  {survey.client_id}  {survey.data.get('farmerName', '-')}  "
              f"t={survey.client_timestamp}")
    return 0


async def show_logs(client: SyncClient, limit: int) -> int:
    try:
        entries = await client.recent_activity(limit)
    except SyncClientError as exc:
        print(f"ERROR: {exc.message}")
        return 1

    for entry in entries:
        estado = "OK " if entry.success else "ERR"
        print(f"  [{estado}] {entry.created_at:%Y-%m-%d %H:%M:%S}  {entry.device_id or '-'}  "
              f"enviadas={entry.survey_count} nuevas={entry.inserted_count} "
              f"conflictos={entry.conflict_count} fallidas={entry.failed_count}")
    return 0


async def main(args: argparse.Namespace) -> int:
    store = LocalRecordStore(args.database)
    await store.init()
    client = SyncClient(store, args.server, actor_id=args.user, access_token=args.token)
    try:
        if args.command == "sync":
            return await run_sync(client)
        if args.command == "pending":
            return await show_pending(store)
        return await show_logs(client, args.limit)
    finally:
        await store.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sincronización offline del dispositivo")
    parser.add_argument("command", choices=["sync", "pending", "logs"])
    parser.add_argument("--server", default=None, help="URL del servidor (SYNC_SERVER_URL)")
    parser.add_argument("--database", default=None, help="URL del almacén local (LOCAL_DATABASE_URL)")
    parser.add_argument("--user", default=None, help="Encuestador; sin valor se usa el actor anónimo")
    parser.add_argument("--token", default=None, help="JWT de acceso (requerido para logs)")
    parser.add_argument("--limit", type=int, default=20)
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args)))
