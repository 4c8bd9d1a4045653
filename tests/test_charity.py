"""
tests/test_charity.py

Program ledger behaviour: creation rules, donations into escrow,
completion, cancellation with refunds, and the ledger-wide invariants.

Run:
    pytest tests/test_charity.py -v
"""

import threading

import pytest

from charity_chain.config import LedgerConfig
from charity_chain.core.accounts import ZERO_PUBKEY
from charity_chain.programs import errors
from charity_chain.programs.charity import (
    CharityProgram,
    Donation,
    ProgramRequest,
    ProgramStatus,
)
from charity_chain.programs.events import EventType
from tests.conftest import D1, D2, R1, R2


class TestCreateProgram:

    def test_create_program_is_listed(self, charity, clock):
        deadline = clock.now() + 3600
        assert charity.create_program(R1, "Clean Water", "desc", "water.png", deadline) == R1

        programs = charity.get_all_programs()
        assert len(programs) == 1
        program = programs[0]
        assert program.receiver == R1
        assert program.title == "Clean Water"
        assert program.description == "desc"
        assert program.image == "water.png"
        assert program.deadline == deadline
        assert program.active is True
        assert program.collected_amount == 0
        assert program.donations == []
        assert charity.get_donations(R1) == ()

    @pytest.mark.parametrize("receiver", [ZERO_PUBKEY, "0x" + "0" * 40, "", None])
    def test_zero_receiver_rejected(self, charity, clock, receiver):
        with pytest.raises(errors.InvalidReceiver) as excinfo:
            charity.create_program(receiver, "T", "D", "I", clock.now() + 3600)
        assert excinfo.value.message == "Invalid receiver address"
        assert charity.get_all_programs() == []

    def test_empty_title_rejected(self, charity, clock):
        with pytest.raises(errors.MissingTitle, match="Title is required"):
            charity.create_program(R1, "", "D", "I", clock.now() + 3600)

    def test_empty_description_rejected(self, charity, clock):
        with pytest.raises(errors.MissingDescription, match="Description is required"):
            charity.create_program(R1, "T", "", "I", clock.now() + 3600)

    @pytest.mark.parametrize("offset", [0, -3600])
    def test_deadline_must_be_future(self, charity, clock, offset):
        with pytest.raises(errors.DeadlineNotFuture, match="Deadline should be in the future"):
            charity.create_program(R1, "T", "D", "I", clock.now() + offset)
        assert len(charity) == 0

    def test_checks_run_in_order(self, charity, clock):
        """With every field wrong, the receiver check wins; then title, then description."""
        past = clock.now() - 1
        with pytest.raises(errors.InvalidReceiver):
            charity.create_program(ZERO_PUBKEY, "", "", "", past)
        with pytest.raises(errors.MissingTitle):
            charity.create_program(R1, "", "", "", past)
        with pytest.raises(errors.MissingDescription):
            charity.create_program(R1, "T", "", "", past)
        with pytest.raises(errors.DeadlineNotFuture):
            charity.create_program(R1, "T", "D", "", past)

    def test_second_active_program_rejected(self, open_program, clock):
        with pytest.raises(errors.ProgramInProgress, match="Program is in progress"):
            open_program.create_program(R1, "New Program", "New Description", "x", clock.now() + 7200)
        assert len(open_program.get_all_programs()) == 1

    def test_other_receivers_unaffected(self, open_program, clock):
        open_program.create_program(R2, "Program2", "description for 2", "i", clock.now() + 3600)
        assert [p.receiver for p in open_program.get_all_programs()] == [R1, R2]

    def test_new_program_after_termination(self, open_program, clock):
        open_program.complete_program(R1)
        open_program.create_program(R1, "Round two", "again", "", clock.now() + 3600)

        programs = open_program.get_all_programs()
        assert [p.index for p in programs] == [0, 1]
        assert [p.active for p in programs] == [False, True]
        assert open_program.get_program(R1).title == "Round two"

    def test_create_from_request(self, charity, clock):
        request = ProgramRequest(R1, "Clean Water", "desc", "img", clock.now() + 60)
        assert charity.create_program_from_request(request) == R1
        assert charity.has_active_program(R1)

    def test_non_numeric_deadline(self, charity):
        with pytest.raises(TypeError):
            charity.create_program(R1, "T", "D", "I", "tomorrow")

    @pytest.mark.parametrize("deadline", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_deadline(self, charity, deadline):
        with pytest.raises(ValueError):
            charity.create_program(R1, "T", "D", "I", deadline)
        assert len(charity) == 0
        assert not charity.has_active_program(R1)

    @pytest.mark.parametrize("field", ["title", "description", "image"])
    def test_text_fields_must_be_strings(self, charity, clock, field):
        args = {"title": "T", "description": "D", "image": "I"}
        args[field] = 123
        with pytest.raises(TypeError):
            charity.create_program(R1, deadline=clock.now() + 60, **args)
        assert len(charity) == 0

    def test_escrow_cannot_be_receiver(self, charity, clock):
        with pytest.raises(errors.InvalidReceiver):
            charity.create_program(charity.escrow_address, "T", "D", "I", clock.now() + 60)


class TestSendDonation:

    def test_donations_accumulate(self, open_program, accounts):
        open_program.send_donation(R1, 1, D1)
        open_program.send_donation(R1, 2, D2)

        program = open_program.get_program(R1)
        assert program.collected_amount == 3
        assert open_program.get_donations(R1) == ((D1, 1), (D2, 2))
        assert program.donations == [Donation(D1, 1), Donation(D2, 2)]

        assert accounts.get_account_balance(D1) == 99
        assert accounts.get_account_balance(D2) == 98

    def test_donations_held_in_escrow(self, open_program, accounts):
        open_program.send_donation(R1, 5, D1)
        assert open_program.escrow_balance(R1) == 5
        assert open_program.escrow_balance() == 5
        assert accounts.get_account_balance(R1) == 0

    def test_unknown_program(self, charity):
        with pytest.raises(errors.ProgramInvalid, match="Program is invalid"):
            charity.send_donation(R1, 1, D1)

    @pytest.mark.parametrize("terminate", ["complete_program", "cancel_program"])
    def test_terminated_program(self, open_program, accounts, terminate):
        getattr(open_program, terminate)(R1)
        with pytest.raises(errors.ProgramInvalid):
            open_program.send_donation(R1, 2, D1)
        assert accounts.get_account_balance(D1) == 100

    def test_deadline_passed(self, open_program, clock, accounts):
        clock.advance(3601)
        with pytest.raises(errors.DeadlineExpired) as excinfo:
            open_program.send_donation(R1, 2, D1)

        error = excinfo.value
        assert error.kind == "DeadlineExpired"
        assert error.matches("Deadline has passed")
        assert error.matches("Program has finished")
        assert open_program.get_program(R1).active is True
        assert accounts.get_account_balance(D1) == 100

    def test_donation_at_deadline_accepted(self, open_program, clock):
        clock.advance(3600)
        open_program.send_donation(R1, 1, D1)
        assert open_program.get_program(R1).collected_amount == 1

    def test_zero_amount(self, open_program):
        with pytest.raises(errors.DonationTooSmall, match="greater than 1 wei"):
            open_program.send_donation(R1, 0, D1)
        with pytest.raises(errors.DonationTooSmall):
            open_program.send_donation(R1, -5, D1)

    def test_deadline_checked_before_amount(self, open_program, clock):
        clock.advance(7200)
        with pytest.raises(errors.DeadlineExpired):
            open_program.send_donation(R1, 0, D1)

    def test_min_donation_from_config(self, accounts, clock):
        charity = CharityProgram(accounts=accounts, clock=clock, config=LedgerConfig(min_donation=10))
        charity.create_program(R1, "T", "D", "I", clock.now() + 60)
        with pytest.raises(errors.DonationTooSmall):
            charity.send_donation(R1, 9, D1)
        charity.send_donation(R1, 10, D1)

    def test_insufficient_funds(self, open_program, accounts):
        with pytest.raises(errors.InsufficientFunds):
            open_program.send_donation(R1, 101, D1)
        assert open_program.get_donations(R1) == ()
        assert accounts.get_account_balance(D1) == 100

    def test_invalid_donor(self, open_program):
        with pytest.raises(errors.InvalidDonor):
            open_program.send_donation(R1, 1, ZERO_PUBKEY)

    def test_escrow_cannot_donate(self, open_program, accounts, clock):
        open_program.create_program(R2, "Other", "desc", "", clock.now() + 3600)
        open_program.send_donation(R2, 50, D1)
        escrow = open_program.escrow_address

        with pytest.raises(errors.InvalidDonor):
            open_program.send_donation(R1, 50, escrow)

        assert accounts.get_account_balance(escrow) == 50
        assert open_program.get_donations(R1) == ()
        open_program.cancel_program(R2)
        assert accounts.get_account_balance(D1) == 100
        assert accounts.get_account_balance(escrow) == 0

    def test_float_amount_rejected(self, open_program):
        with pytest.raises(TypeError):
            open_program.send_donation(R1, 1.5, D1)


class TestCompleteProgram:

    def test_complete_releases_escrow(self, open_program, accounts):
        open_program.send_donation(R1, 1, D1)
        open_program.send_donation(R1, 2, D2)

        result = open_program.complete_program(R1)

        assert result.active is False
        assert result.status is ProgramStatus.COMPLETED
        assert result.escrow_balance == 0
        assert result.collected_amount == 3
        assert accounts.get_account_balance(R1) == 3
        assert open_program.escrow_balance() == 0
        assert open_program.get_donations(R1) == ((D1, 1), (D2, 2))

    def test_complete_emits_event(self, open_program):
        seen = []
        open_program.events.subscribe(seen.append, EventType.PROGRAM_COMPLETED)

        open_program.complete_program(R1)

        assert len(seen) == 1
        assert seen[0].name == "projectCompleted"
        assert seen[0].args == (R1, 0)
        assert open_program.get_events() == seen

    def test_complete_without_program(self, charity):
        with pytest.raises(errors.ProgramNotFound) as excinfo:
            charity.complete_program(R1)
        assert excinfo.value.kind == "NotFound"

    def test_complete_twice(self, open_program):
        open_program.complete_program(R1)
        with pytest.raises(errors.ProgramInvalid):
            open_program.complete_program(R1)
        assert len(open_program.get_events()) == 1

    def test_only_receiver_can_complete(self, open_program):
        with pytest.raises(errors.ProgramNotFound):
            open_program.complete_program(D1)
        assert open_program.has_active_program(R1)

    def test_event_index_follows_creation_order(self, open_program, clock):
        open_program.create_program(R2, "Second", "d", "", clock.now() + 60)
        seen = []
        open_program.events.subscribe(seen.append)

        open_program.complete_program(R2)

        assert seen[0].args == (R2, 1)


class TestCancelProgram:

    def test_cancel_refunds_every_donor(self, open_program, accounts):
        open_program.send_donation(R1, 1, D1)
        open_program.send_donation(R1, 2, D2)
        open_program.send_donation(R1, 3, D1)

        result = open_program.cancel_program(R1)

        assert result.active is False
        assert result.status is ProgramStatus.CANCELLED
        assert result.escrow_balance == 0
        assert accounts.get_account_balance(D1) == 100
        assert accounts.get_account_balance(D2) == 100
        assert accounts.get_account_balance(R1) == 0
        assert open_program.escrow_balance() == 0
        # History survives the refund
        assert open_program.get_donations(R1) == ((D1, 1), (D2, 2), (D1, 3))

    def test_cancel_emits_event(self, open_program):
        seen = []
        open_program.events.subscribe(seen.append, EventType.PROGRAM_CANCELLED)

        open_program.cancel_program(R1)

        assert [(e.name, e.args) for e in seen] == [("projectCanceled", (R1, 0))]

    def test_cancel_without_donations(self, open_program):
        assert open_program.cancel_program(R1).active is False

    def test_cancel_twice_refunds_once(self, open_program, accounts):
        open_program.send_donation(R1, 4, D1)
        open_program.cancel_program(R1)
        with pytest.raises(errors.ProgramInvalid):
            open_program.cancel_program(R1)
        assert accounts.get_account_balance(D1) == 100

    def test_cancel_after_complete(self, open_program):
        open_program.complete_program(R1)
        with pytest.raises(errors.ProgramInvalid):
            open_program.cancel_program(R1)

    def test_refunds_are_all_or_nothing(self, open_program, accounts):
        open_program.send_donation(R1, 10, D1)
        open_program.send_donation(R1, 20, D2)

        # Drain part of the escrow behind the ledger's back
        assert accounts.transfer_lamports(open_program.escrow_address, R2, 15)

        with pytest.raises(errors.TransferFailed):
            open_program.cancel_program(R1)

        program = open_program.get_program(R1)
        assert program.active is True
        assert program.escrow_balance == 30
        assert accounts.get_account_balance(D1) == 90
        assert accounts.get_account_balance(D2) == 80
        assert open_program.get_events() == []

    def test_failing_listener_does_not_undo_cancel(self, open_program, accounts):
        def broken(event):
            raise RuntimeError("listener down")

        open_program.events.subscribe(broken)
        open_program.send_donation(R1, 7, D1)

        open_program.cancel_program(R1)

        assert accounts.get_account_balance(D1) == 100
        assert not open_program.has_active_program(R1)


class TestReads:

    def test_get_donations_unknown_receiver(self, charity):
        with pytest.raises(errors.ProgramNotFound):
            charity.get_donations(R1)

    def test_get_program_unknown_receiver(self, charity):
        with pytest.raises(errors.ProgramNotFound):
            charity.get_program(R1)

    def test_get_all_programs_includes_terminated(self, open_program, clock):
        open_program.create_program(R2, "Program2", "d", "", clock.now() + 60)
        open_program.cancel_program(R1)

        programs = open_program.get_all_programs()
        assert [(p.receiver, p.active) for p in programs] == [(R1, False), (R2, True)]

    def test_snapshots_are_detached(self, open_program):
        snapshot = open_program.get_program(R1)
        snapshot.donations.append(Donation(D1, 1000))
        snapshot.collected_amount = 1000

        program = open_program.get_program(R1)
        assert program.donations == []
        assert program.collected_amount == 0

    def test_to_dict(self, open_program):
        open_program.send_donation(R1, 3, D2)
        data = open_program.get_program(R1).to_dict()
        assert data["status"] == "active"
        assert data["active"] is True
        assert data["donations"] == [{"donor": D2, "amount": 3}]


class TestInvariants:

    def test_sum_invariant_holds_after_every_donation(self, open_program):
        for amount, donor in [(1, D1), (5, D2), (2, D1), (9, D2)]:
            open_program.send_donation(R1, amount, donor)
            program = open_program.get_program(R1)
            assert program.collected_amount == sum(d.amount for d in program.donations)
            assert program.escrow_balance == program.collected_amount

    def test_at_most_one_active_program_per_receiver(self, open_program, clock):
        for _ in range(3):
            with pytest.raises(errors.ProgramInProgress):
                open_program.create_program(R1, "T", "D", "", clock.now() + 10)
            open_program.complete_program(R1)
            open_program.create_program(R1, "T", "D", "", clock.now() + 10)

        active = [p for p in open_program.get_all_programs() if p.receiver == R1 and p.active]
        assert len(active) == 1

    def test_lamports_are_conserved(self, open_program, accounts):
        before = accounts.total_lamports()
        open_program.send_donation(R1, 10, D1)
        open_program.send_donation(R1, 10, D2)
        open_program.complete_program(R1)
        assert accounts.total_lamports() == before

    def test_concurrent_donations(self, accounts, clock):
        """Parallel donors must never break the sum invariant or lose lamports."""
        charity = CharityProgram(accounts=accounts, clock=clock)
        charity.create_program(R1, "T", "D", "", clock.now() + 3600)
        donors = [f"{i:02x}" * 32 for i in range(1, 9)]
        for donor in donors:
            accounts.airdrop(donor, 50)
        failures = []

        def donate(donor):
            try:
                for _ in range(25):
                    charity.send_donation(R1, 2, donor)
            except Exception as e:
                failures.append(str(e))

        threads = [threading.Thread(target=donate, args=(d,)) for d in donors]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert failures == []
        program = charity.get_program(R1)
        assert len(program.donations) == 200
        assert program.collected_amount == 400
        assert charity.escrow_balance() == 400
        assert all(accounts.get_account_balance(d) == 0 for d in donors)
