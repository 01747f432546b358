from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, override

from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.http import HttpResponseRedirect

from voting import rounds_lifecycle
from voting.models import AuditLogEntry, Ballot, Candidate, Round, RoundResult, Vote
from voting.rounds_errors import RoundError

logger = logging.getLogger(__name__)


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """Admin for append-only audit data: browsable, never editable."""

    @override
    def has_add_permission(self, request) -> bool:
        return False

    @override
    def has_change_permission(self, request, obj=None) -> bool:
        return False

    @override
    def has_delete_permission(self, request, obj=None) -> bool:
        return False


_INLINE_EDITABLE = ("ordering", "name", "surname", "group_name", "location")


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = (*_INLINE_EDITABLE, "is_eliminated", "is_selected", "is_removed")
    readonly_fields = ("is_eliminated", "is_selected", "is_removed")
    show_change_link = True

    @override
    def has_add_permission(self, request, obj=None) -> bool:
        # obj is the parent round.
        if obj is not None and obj.is_closed:
            return False
        return super().has_add_permission(request, obj)

    @override
    def has_change_permission(self, request, obj=None) -> bool:
        if obj is not None and obj.is_closed:
            return False
        return super().has_change_permission(request, obj)

    @override
    def has_delete_permission(self, request, obj=None) -> bool:
        # Deletion goes through remove_candidate so voted candidates are kept.
        return False


@admin.register(Round)
class RoundAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "category",
        "year",
        "status",
        "current_stage",
        "stage_ballot_limit",
        "selected_count",
        "target_winner_count",
        "updated_at",
    )
    list_filter = ("is_open", "is_closed", "category", "year")
    search_fields = ("title", "description")
    inlines = (CandidateInline,)
    actions = (
        "activate_rounds_action",
        "pause_rounds_action",
        "resume_rounds_action",
        "compute_results_action",
        "finalize_stage_action",
        "reveal_results_action",
        "hide_results_action",
        "close_rounds_action",
    )

    _ENGINE_FIELDS = (
        "is_open",
        "is_paused",
        "is_closed",
        "current_stage",
        "stage_ballot_limit",
        "selected_count",
        "revision",
        "closed_at",
        "created_at",
        "updated_at",
    )

    @override
    def get_readonly_fields(self, request, obj=None):
        readonly = [*super().get_readonly_fields(request, obj=obj), *self._ENGINE_FIELDS]
        if obj is not None and (obj.is_open or obj.is_closed or obj.current_stage > 1):
            readonly.append("target_winner_count")
        return tuple(readonly)

    @override
    def save_model(self, request, obj, form, change) -> None:
        data = {
            name: form.cleaned_data[name]
            for name in ("title", "description", "category", "year", "expected_voters")
            if name in form.cleaned_data
        }
        target = form.cleaned_data.get("target_winner_count")

        if not change:
            created = rounds_lifecycle.create_round(target_winner_count=target or 1, **data)
            obj.pk = created.pk
            obj._state.adding = False
            obj.refresh_from_db()
            return

        updated = rounds_lifecycle.update_round(round=obj, target_winner_count=target, **data)
        obj.refresh_from_db()
        logger.info("RoundAdmin.save_model: round=%s revision=%s", updated.pk, updated.revision)

    @override
    def save_formset(self, request, form, formset, change) -> None:
        if formset.model is not Candidate:
            return super().save_formset(request, form, formset, change)

        formset.save(commit=False)
        for candidate, changed_fields in formset.changed_objects:
            edits = {field: getattr(candidate, field) for field in changed_fields if field in _INLINE_EDITABLE}
            if edits:
                rounds_lifecycle.update_candidate(candidate=candidate, **edits)
        for candidate in formset.new_objects:
            display = {field: getattr(candidate, field) for field in ("surname", "group_name", "location")}
            rounds_lifecycle.add_candidate(round=form.instance, name=candidate.name, **display)
        formset.save_m2m()

    @override
    def delete_model(self, request, obj) -> None:
        rounds_lifecycle.delete_round(round=obj)

    @override
    def changeform_view(self, request, object_id=None, form_url="", extra_context=None) -> Any:
        try:
            return super().changeform_view(request, object_id, form_url, extra_context)
        except (RoundError, ValidationError) as e:
            self.message_user(request, _error_text(e), level=messages.ERROR)
            return HttpResponseRedirect(request.path)

    def _run_lifecycle(
        self,
        request,
        queryset,
        operation: Callable[..., object],
        success_message: str,
    ) -> None:
        succeeded = 0
        for voting_round in queryset:
            try:
                operation(round=voting_round)
                succeeded += 1
            except RoundError as e:
                self.message_user(request, f"{voting_round}: {e.message}", level=messages.ERROR)
        if succeeded:
            self.message_user(request, success_message % {"count": succeeded}, level=messages.SUCCESS)

    @admin.action(description="Activate selected round", permissions=["manage_rounds"])
    def activate_rounds_action(self, request, queryset) -> None:
        if queryset.count() != 1:
            self.message_user(request, "Select exactly one round to activate.", level=messages.ERROR)
            return
        self._run_lifecycle(request, queryset, rounds_lifecycle.activate_round, "Activated %(count)d round(s).")

    @admin.action(description="Pause voting", permissions=["manage_rounds"])
    def pause_rounds_action(self, request, queryset) -> None:
        self._run_lifecycle(request, queryset, rounds_lifecycle.pause_round, "Paused %(count)d round(s).")

    @admin.action(description="Resume voting", permissions=["manage_rounds"])
    def resume_rounds_action(self, request, queryset) -> None:
        self._run_lifecycle(request, queryset, rounds_lifecycle.resume_round, "Resumed %(count)d round(s).")

    @admin.action(description="Compute results for the current stage", permissions=["manage_rounds"])
    def compute_results_action(self, request, queryset) -> None:
        self._run_lifecycle(
            request,
            queryset,
            rounds_lifecycle.compute_stage_results,
            "Computed results for %(count)d round(s).",
        )

    @admin.action(description="Finalize the current stage", permissions=["manage_rounds"])
    def finalize_stage_action(self, request, queryset) -> None:
        for voting_round in queryset:
            try:
                outcome = rounds_lifecycle.finalize_stage(round=voting_round)
            except RoundError as e:
                self.message_user(request, f"{voting_round}: {e.message}", level=messages.ERROR)
                continue
            self.message_user(
                request,
                f"{voting_round}: stage {outcome.stage} finalized; "
                f"{len(outcome.decision.eliminate)} eliminated, {len(outcome.decision.select)} selected.",
                level=messages.SUCCESS,
            )

    @admin.action(description="Reveal latest results", permissions=["manage_rounds"])
    def reveal_results_action(self, request, queryset) -> None:
        self._run_lifecycle(request, queryset, rounds_lifecycle.reveal_results, "Revealed results of %(count)d round(s).")

    @admin.action(description="Hide latest results", permissions=["manage_rounds"])
    def hide_results_action(self, request, queryset) -> None:
        self._run_lifecycle(request, queryset, rounds_lifecycle.hide_results, "Hid results of %(count)d round(s).")

    @admin.action(description="Close selected rounds", permissions=["manage_rounds"])
    def close_rounds_action(self, request, queryset) -> None:
        self._run_lifecycle(request, queryset, rounds_lifecycle.close_round, "Closed %(count)d round(s).")

    def has_manage_rounds_permission(self, request) -> bool:
        return request.user.has_perm("voting.manage_rounds")


def _error_text(exc: Exception) -> str:
    if isinstance(exc, RoundError):
        return exc.message
    if isinstance(exc, ValidationError):
        return "; ".join(exc.messages)
    return str(exc)


_CANDIDATE_FORM_FIELDS = ("name", "surname", "location", "group_name", "age", "description", "image_url", "ordering")


@admin.register(Candidate)
class CandidateAdmin(admin.ModelAdmin):
    list_display = ("full_name", "round", "group_name", "ordering", "is_eliminated", "eliminated_at_stage", "is_selected", "is_removed")
    list_filter = ("round", "is_eliminated", "is_selected", "is_removed")
    search_fields = ("name", "surname", "group_name", "location")
    readonly_fields = ("is_eliminated", "eliminated_at_stage", "is_selected", "is_removed", "created_at", "updated_at")

    @override
    def get_readonly_fields(self, request, obj=None):
        readonly = list(super().get_readonly_fields(request, obj=obj))
        if obj is not None:
            readonly.append("round")
        return tuple(readonly)

    @override
    def formfield_for_foreignkey(self, db_field, request, **kwargs):
        if db_field.name == "round":
            kwargs["queryset"] = Round.objects.filter(is_closed=False)
        return super().formfield_for_foreignkey(db_field, request, **kwargs)

    @override
    def has_change_permission(self, request, obj=None) -> bool:
        if obj is not None and obj.round.is_closed:
            return False
        return super().has_change_permission(request, obj)

    @override
    def has_delete_permission(self, request, obj=None) -> bool:
        if obj is not None and obj.round.is_closed:
            return False
        return super().has_delete_permission(request, obj)

    @override
    def save_model(self, request, obj, form, change) -> None:
        data = {name: form.cleaned_data[name] for name in _CANDIDATE_FORM_FIELDS if name in form.cleaned_data}

        if not change:
            data.pop("ordering", None)
            created = rounds_lifecycle.add_candidate(round=form.cleaned_data["round"], **data)
            obj.pk = created.pk
            obj._state.adding = False
            obj.refresh_from_db()
            return

        edits = {name: value for name, value in data.items() if name in form.changed_data}
        if edits:
            rounds_lifecycle.update_candidate(candidate=obj, **edits)
        obj.refresh_from_db()

    @override
    def changeform_view(self, request, object_id=None, form_url="", extra_context=None) -> Any:
        try:
            return super().changeform_view(request, object_id, form_url, extra_context)
        except (RoundError, ValidationError) as e:
            self.message_user(request, _error_text(e), level=messages.ERROR)
            return HttpResponseRedirect(request.path)

    @override
    def delete_model(self, request, obj) -> None:
        deleted = rounds_lifecycle.remove_candidate(candidate=obj)
        if not deleted:
            self.message_user(
                request,
                f"{obj} already has votes and was marked as removed instead of deleted.",
                level=messages.WARNING,
            )

    @override
    def delete_queryset(self, request, queryset) -> None:
        for candidate in list(queryset):
            try:
                self.delete_model(request, candidate)
            except RoundError as e:
                self.message_user(request, f"{candidate}: {e.message}", level=messages.ERROR)


@admin.register(Ballot)
class BallotAdmin(ReadOnlyModelAdmin):
    list_display = ("id", "round", "stage", "short_device", "created_at")
    list_filter = ("round", "stage")

    @admin.display(description="Device")
    def short_device(self, obj: Ballot) -> str:
        return obj.device_id[:8]


@admin.register(Vote)
class VoteAdmin(ReadOnlyModelAdmin):
    list_display = ("id", "round", "stage", "candidate", "created_at")
    list_filter = ("round", "stage")


@admin.register(RoundResult)
class RoundResultAdmin(ReadOnlyModelAdmin):
    list_display = ("round", "stage", "candidate", "vote_count", "is_visible", "updated_at")
    list_filter = ("round", "stage", "is_visible")


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(ReadOnlyModelAdmin):
    list_display = ("timestamp", "round", "event_type", "is_public")
    list_filter = ("round", "event_type", "is_public")
    search_fields = ("event_type",)
