"""HTTP routers.  Mounted by :func:`astraops.api.app.create_app`."""
