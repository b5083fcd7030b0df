import os

from buslink import create_app

app = create_app(os.environ.get("BUSLINK_CONFIG", "config.ProductionConfig"))
