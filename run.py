from pickpool import create_app, db
from pickpool.models import AuditEvent, Fixture, MatchPick, MatchResultHeader, Pool, StructuralPick

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Pool": Pool,
        "Fixture": Fixture,
        "MatchResultHeader": MatchResultHeader,
        "MatchPick": MatchPick,
        "StructuralPick": StructuralPick,
        "AuditEvent": AuditEvent,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
