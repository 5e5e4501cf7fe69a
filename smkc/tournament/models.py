from django.db import models

from smkc.tournament_core.structure import Stage

STAGE_CHOICES = [
    (Stage.QUALIFICATION.value, "Qualification"),
    (Stage.REVIVAL_1.value, "Revival round 1"),
    (Stage.REVIVAL_2.value, "Revival round 2"),
    (Stage.PHASE1.value, "Phase 1"),
    (Stage.PHASE2.value, "Phase 2"),
    (Stage.PHASE3.value, "Phase 3 (Finals)"),
]

FINALS_PHASE_CHOICES = STAGE_CHOICES[3:]


# -------------------------------------------------------------------------------
class Tournament(models.Model):
    name = models.CharField(max_length=255)
    # Stage values whose times can no longer be edited
    frozen_stages = models.JSONField(default=list, blank=True)
    date_created = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


# -------------------------------------------------------------------------------
class Player(models.Model):
    name = models.CharField(max_length=255)
    nickname = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ["nickname"]

    def __str__(self):
        return self.nickname


# -------------------------------------------------------------------------------
class StageEntry(models.Model):
    """A player's participation in one Time-Attack stage."""

    tournament = models.ForeignKey(Tournament, on_delete=models.CASCADE)
    player = models.ForeignKey(Player, on_delete=models.CASCADE)
    stage = models.CharField(max_length=31, choices=STAGE_CHOICES)
    lives = models.PositiveIntegerField(default=0)
    eliminated = models.BooleanField(default=False)
    # course code -> time string
    times = models.JSONField(default=dict, blank=True)
    total_time = models.PositiveIntegerField(blank=True, null=True)
    rank = models.PositiveIntegerField(blank=True, null=True)
    qualification_points = models.PositiveIntegerField(default=0)
    # Optimistic-concurrency counter, bumped on every write
    version = models.PositiveIntegerField(default=0)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["tournament", "player", "stage"], name="unique_stage_entry"
            )
        ]
        indexes = [
            models.Index(
                fields=["tournament", "stage", "eliminated"], name="stageentry_stage_elim_idx"
            )
        ]

    def __str__(self):
        return "%s - %s (%s)" % (self.tournament, self.player, self.stage)


# -------------------------------------------------------------------------------
class PhaseRound(models.Model):
    tournament = models.ForeignKey(Tournament, on_delete=models.CASCADE)
    phase = models.CharField(max_length=31, choices=FINALS_PHASE_CHOICES)
    round_number = models.PositiveIntegerField()
    course = models.CharField(max_length=15)
    # [{"player_id": ..., "time_ms": ...}], null while the round is open
    results = models.JSONField(blank=True, null=True)
    eliminated = models.JSONField(default=list, blank=True)
    lives_reset = models.BooleanField(default=False)

    class Meta:
        ordering = ["round_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["tournament", "phase", "round_number"], name="unique_phase_round"
            )
        ]

    def __str__(self):
        return "%s - %s round %d (%s)" % (
            self.tournament, self.phase, self.round_number, self.course,
        )


# -------------------------------------------------------------------------------
class PlayerTournamentScore(models.Model):
    """Snapshot of a player's points in every category and overall rank."""

    tournament = models.ForeignKey(Tournament, on_delete=models.CASCADE)
    player = models.ForeignKey(Player, on_delete=models.CASCADE)
    ta_qualification_points = models.PositiveIntegerField(default=0)
    bm_qualification_points = models.PositiveIntegerField(default=0)
    mr_qualification_points = models.PositiveIntegerField(default=0)
    gp_qualification_points = models.PositiveIntegerField(default=0)
    ta_finals_points = models.PositiveIntegerField(default=0)
    bm_finals_points = models.PositiveIntegerField(default=0)
    mr_finals_points = models.PositiveIntegerField(default=0)
    gp_finals_points = models.PositiveIntegerField(default=0)
    total_points = models.PositiveIntegerField(default=0)
    overall_rank = models.PositiveIntegerField(blank=True, null=True)
    date_modified = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["overall_rank"]
        constraints = [
            models.UniqueConstraint(
                fields=["tournament", "player"], name="unique_tournament_score"
            )
        ]

    def __str__(self):
        return "%s - %s" % (self.tournament, self.player)
