# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import fastapi

import common.config
import common.db.database as db
import shc_verifier.verifier as app_source


def startup() -> fastapi.FastAPI:

    config = common.config.DBConfig()
    db.alembic_upgrade(config.ALEMBIC_CONFIG_FILE, config.SQLALCHEMY_DATABASE_URL)
    return app_source.app


app = startup()

if __name__ == '__main__':
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
