"""
Management command to seed a Time-Attack tournament:
- Configurable number of players with Faker generated names
- Full qualification times on every course
- Optional promotion into the finals phases
"""

import random

from django.core.management.base import BaseCommand, CommandError
from faker import Faker

from smkc.tournament.models import Player, Tournament
from smkc.tournament.structure_to_db import create_context
from smkc.tournament_core.exceptions import TournamentEngineError
from smkc.tournament_core.phases import (
    add_qualification_entries,
    promote_to_phase1,
    promote_to_revival1,
    record_times,
)
from smkc.tournament_core.structure import Stage
from smkc.tournament_core.timecodec import format_time


class Command(BaseCommand):
    help = "Seed a Time-Attack tournament with players and qualification times"

    def add_arguments(self, parser):
        parser.add_argument(
            "--players",
            type=int,
            default=24,
            help="Number of players (default: 24)",
        )
        parser.add_argument(
            "--name",
            type=str,
            default="SMK Championship",
            help="Tournament name (default: SMK Championship)",
        )
        parser.add_argument(
            "--seed",
            type=int,
            default=None,
            help="Random seed for reproducible names and times",
        )
        parser.add_argument(
            "--incomplete",
            type=int,
            default=0,
            help="Number of players left with missing course times (default: 0)",
        )
        parser.add_argument(
            "--promote",
            choices=["none", "phase1", "revival"],
            default="none",
            help="Promote qualifiers into phase1 or revival round 1 after seeding",
        )

    def handle(self, *args, **options):
        players_count = options["players"]
        if players_count < 2:
            raise CommandError("At least 2 players are needed")
        if options["incomplete"] > players_count:
            raise CommandError("--incomplete cannot exceed --players")

        fake = Faker()
        rng = random.Random(options["seed"])
        if options["seed"] is not None:
            fake.seed_instance(options["seed"])

        context = create_context(rng=rng)
        courses = context.config.courses

        tournament = Tournament.objects.create(name=options["name"])
        self.stdout.write(self.style.WARNING(f"Creating {tournament.name}..."))

        players = []
        for _ in range(players_count):
            nickname = fake.unique.user_name()
            player, _ = Player.objects.get_or_create(
                nickname=nickname, defaults={"name": fake.name()}
            )
            players.append(player)

        tournament_id = str(tournament.pk)
        add_qualification_entries(
            context, tournament_id, [(str(p.pk), p.nickname) for p in players]
        )
        self.stdout.write(f"  - {players_count} players registered")

        # Typical lap record pace per course plus a per-player skill gap
        course_pace = {course: rng.randint(55000, 95000) for course in courses}
        incomplete = set(rng.sample(range(players_count), options["incomplete"]))

        for index, player in enumerate(players):
            skill = rng.randint(0, 8000)
            times = {
                course: format_time(pace + skill + rng.randint(0, 1500))
                for course, pace in course_pace.items()
            }
            if index in incomplete:
                missing = rng.choice(courses)
                times[missing] = ""
            record_times(context, tournament_id, str(player.pk), Stage.QUALIFICATION, times)

        self.stdout.write(f"  - Times recorded on {len(courses)} courses")

        promote = options["promote"]
        if promote != "none":
            promote_fn = promote_to_phase1 if promote == "phase1" else promote_to_revival1
            try:
                result = promote_fn(context, tournament_id)
            except TournamentEngineError as e:
                raise CommandError(str(e))
            self.stdout.write(f"  - {result.message}")
            if result.skipped:
                self.stdout.write(f"  - Skipped without times: {', '.join(result.skipped)}")

        self.stdout.write(
            self.style.SUCCESS(f"✓ Tournament {tournament.name} (id {tournament.pk}) seeded")
        )
