import sys
import os

# We are in services/api
sys.path.append(os.getcwd())

REQUIRED_ROUTES = [
    ("POST", "/api/orders"),
    ("PATCH", "/api/admin/orders/{order_id}/status"),
    ("PATCH", "/api/admin/batches/{batch_id}/status"),
    ("POST", "/api/admin/ingredients/{ingredient_id}/adjust"),
    ("POST", "/api/webhooks/stripe"),
]

try:
    from bakehouse.main import app
    print("App imported successfully")

    # Check routes
    registered = {
        (method, route.path)
        for route in app.routes
        if hasattr(route, "methods")
        for method in route.methods
    }
    missing = [r for r in REQUIRED_ROUTES if r not in registered]
    for method, path in missing:
        print(f"ERROR: Route {method} {path} NOT FOUND")

    if missing:
        sys.exit(1)

except Exception as e:
    print(f"App import failed: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
