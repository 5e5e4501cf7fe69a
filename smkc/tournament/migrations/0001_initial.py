from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Tournament",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("frozen_stages", models.JSONField(blank=True, default=list)),
                ("date_created", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="Player",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("nickname", models.CharField(max_length=255, unique=True)),
            ],
            options={
                "ordering": ["nickname"],
            },
        ),
        migrations.CreateModel(
            name="StageEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stage", models.CharField(choices=[("qualification", "Qualification"), ("revival_1", "Revival round 1"), ("revival_2", "Revival round 2"), ("phase1", "Phase 1"), ("phase2", "Phase 2"), ("phase3", "Phase 3 (Finals)")], max_length=31)),
                ("lives", models.PositiveIntegerField(default=0)),
                ("eliminated", models.BooleanField(default=False)),
                ("times", models.JSONField(blank=True, default=dict)),
                ("total_time", models.PositiveIntegerField(blank=True, null=True)),
                ("rank", models.PositiveIntegerField(blank=True, null=True)),
                ("qualification_points", models.PositiveIntegerField(default=0)),
                ("version", models.PositiveIntegerField(default=0)),
                ("player", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="tournament.player")),
                ("tournament", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="tournament.tournament")),
            ],
            options={
                "indexes": [models.Index(fields=["tournament", "stage", "eliminated"], name="stageentry_stage_elim_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="stageentry",
            constraint=models.UniqueConstraint(fields=("tournament", "player", "stage"), name="unique_stage_entry"),
        ),
        migrations.CreateModel(
            name="PhaseRound",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("phase", models.CharField(choices=[("phase1", "Phase 1"), ("phase2", "Phase 2"), ("phase3", "Phase 3 (Finals)")], max_length=31)),
                ("round_number", models.PositiveIntegerField()),
                ("course", models.CharField(max_length=15)),
                ("results", models.JSONField(blank=True, null=True)),
                ("eliminated", models.JSONField(blank=True, default=list)),
                ("lives_reset", models.BooleanField(default=False)),
                ("tournament", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="tournament.tournament")),
            ],
            options={
                "ordering": ["round_number"],
            },
        ),
        migrations.AddConstraint(
            model_name="phaseround",
            constraint=models.UniqueConstraint(fields=("tournament", "phase", "round_number"), name="unique_phase_round"),
        ),
        migrations.CreateModel(
            name="PlayerTournamentScore",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("ta_qualification_points", models.PositiveIntegerField(default=0)),
                ("bm_qualification_points", models.PositiveIntegerField(default=0)),
                ("mr_qualification_points", models.PositiveIntegerField(default=0)),
                ("gp_qualification_points", models.PositiveIntegerField(default=0)),
                ("ta_finals_points", models.PositiveIntegerField(default=0)),
                ("bm_finals_points", models.PositiveIntegerField(default=0)),
                ("mr_finals_points", models.PositiveIntegerField(default=0)),
                ("gp_finals_points", models.PositiveIntegerField(default=0)),
                ("total_points", models.PositiveIntegerField(default=0)),
                ("overall_rank", models.PositiveIntegerField(blank=True, null=True)),
                ("date_modified", models.DateTimeField(auto_now=True)),
                ("player", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="tournament.player")),
                ("tournament", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, to="tournament.tournament")),
            ],
            options={
                "ordering": ["overall_rank"],
            },
        ),
        migrations.AddConstraint(
            model_name="playertournamentscore",
            constraint=models.UniqueConstraint(fields=("tournament", "player"), name="unique_tournament_score"),
        ),
    ]
