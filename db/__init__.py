"""Order persistence: ORM models live in db.models, engines and sessions in db.session."""
