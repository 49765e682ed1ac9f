"""Record to statistics update rules."""

from datetime import datetime, timezone

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import (
    BusinessRuleViolationError,
    RecordValidationError,
    StatisticsConsistencyError,
)
from statsloader.models.record import Record
from statsloader.models.statistics import EntityStatistics, UpdateInstruction
from statsloader.validation.rules import INT64_MAX, parse_entity_id, parse_non_negative_int
from statsloader.validation.schema import RecordSchema


class RecordProcessor:
    """Turns records into update instructions and applies them."""

    def __init__(self, settings: Settings | None = None, schema: RecordSchema | None = None):
        self.settings = settings or get_settings()
        self.schema = schema or RecordSchema.from_settings(self.settings)
        self.schema.check()

    def to_instruction(self, record: Record) -> UpdateInstruction:
        """Parse a record into an update instruction.

        Args:
            record: Parsed input row

        Returns:
            Increments for the record's entity

        Raises:
            RecordValidationError: If the record is missing fields or holds
                malformed values
            BusinessRuleViolationError: If the increments break a business rule
        """
        line = record.line_number
        missing = [
            column
            for column in self.schema.required_columns
            if column not in record.raw_fields
        ]
        if missing:
            raise RecordValidationError(
                f"Missing required fields at line {line}: {', '.join(missing)}",
                field=missing[0],
            )

        entity_id = parse_entity_id(
            record.get(self.schema.entity_id_column),
            self.schema.entity_id_pattern,
            line,
        )
        increments = {
            column: parse_non_negative_int(record.get(column), column, line)
            for column in self.schema.counter_columns
        }
        instruction = UpdateInstruction(
            entity_id=entity_id,
            increments=increments,
            source_index=record.index,
        )
        self._check_business_rules(instruction)
        return instruction

    def apply_instruction(
        self,
        current: EntityStatistics,
        instruction: UpdateInstruction,
        execution_id: str | None = None,
    ) -> EntityStatistics:
        """Compute the statistics that result from applying an instruction.

        Args:
            current: Statistics as read from the store
            instruction: Increments to apply
            execution_id: Execution performing the update

        Returns:
            New statistics with the version bumped

        Raises:
            BusinessRuleViolationError: If the instruction breaks a business rule
            StatisticsConsistencyError: If the computed counters do not add up
        """
        self._check_business_rules(instruction)
        if current.entity_id != instruction.entity_id:
            raise StatisticsConsistencyError(
                f"Instruction for {instruction.entity_id} applied to {current.entity_id}",
                expected=instruction.entity_id,
                actual=current.entity_id,
            )

        counters = dict(current.counters)
        for name, increment in instruction.increments.items():
            value = current.counter(name) + increment
            if value > INT64_MAX:
                raise StatisticsConsistencyError(
                    f"Counter {name} of {current.entity_id} would overflow",
                    expected=f"<= {INT64_MAX}",
                    actual=value,
                )
            counters[name] = value

        updated = EntityStatistics(
            entity_id=current.entity_id,
            counters=counters,
            last_updated=datetime.now(timezone.utc),
            last_execution_id=execution_id or current.last_execution_id,
            version=current.version + 1,
        )
        self._verify(current, updated, instruction)
        return updated

    def _check_business_rules(self, instruction: UpdateInstruction) -> None:
        if self.settings.reject_zero_increments and instruction.is_empty:
            raise BusinessRuleViolationError(
                f"No meaningful update for {instruction.entity_id}: all increments are zero",
                rule="zero_increment",
                value=instruction.increments,
            )
        limit = self.settings.max_increment
        for name, increment in instruction.increments.items():
            if increment > limit:
                raise BusinessRuleViolationError(
                    f"Unusually large {name} increment for {instruction.entity_id}: "
                    f"{increment} (max: {limit})",
                    rule="max_increment",
                    value=increment,
                )

    @staticmethod
    def _verify(
        old: EntityStatistics,
        new: EntityStatistics,
        instruction: UpdateInstruction,
    ) -> None:
        """Post-update self-check."""
        for name, increment in instruction.increments.items():
            expected = old.counter(name) + increment
            actual = new.counter(name)
            if actual != expected:
                raise StatisticsConsistencyError(
                    f"{name} calculation error: expected {expected}, got {actual}",
                    expected=expected,
                    actual=actual,
                )
        for name, previous in old.counters.items():
            if new.counter(name) < previous:
                raise StatisticsConsistencyError(
                    f"{name} cannot decrease: {previous} -> {new.counter(name)}",
                    expected=f">= {previous}",
                    actual=new.counter(name),
                )
