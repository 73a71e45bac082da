from fitcomp import create_app, db
from fitcomp.models import (
    ActivityEntry,
    CalculationResult,
    Competition,
    CompetitionParticipant,
    CompetitionTeam,
    CompetitionTeamMember,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Competition": Competition,
        "CompetitionParticipant": CompetitionParticipant,
        "ActivityEntry": ActivityEntry,
        "CalculationResult": CalculationResult,
        "CompetitionTeam": CompetitionTeam,
        "CompetitionTeamMember": CompetitionTeamMember,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
