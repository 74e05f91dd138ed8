from handymate.server.db.session import engine, get_session, init_db  # noqa: F401
