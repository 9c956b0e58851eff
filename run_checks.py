import os

os.environ.setdefault("USE_MOCK_DB", "true")

from fastapi.testclient import TestClient
from ecowatch.main import app

client = TestClient(app)

print('ROOT:')
print(client.get('/').json())

print('\nHEALTH:')
print(client.get('/health').json())

print('\nDB HEALTH:')
resp = client.get('/health/db')
print(resp.status_code)
print(resp.json())

print('\nMAP REPORTS:')
resp = client.get('/map/reports')
print(resp.status_code, f"{len(resp.json())} report(s)")
