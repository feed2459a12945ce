from typing import NamedTuple

from hathor import (
    Address,
    Amount,
    Blueprint,
    CallerId,
    Context,
    NCDepositAction,
    NCFail,
    NCWithdrawalAction,
    TokenUid,
    Timestamp,
    export,
    public,
    view,
)

# Constants
HTR_UID = b"\x00"
SECONDS_PER_DAY = 24 * 60 * 60


class FundingInfo(NamedTuple):
    """General funding information."""

    token_uid: str
    goal: int
    reward_budget: int
    duration_days: int
    configured_at: int
    deadline: int
    pool: int
    investors: int
    total_claimed: int
    token_balance: int
    is_configured: bool


class InvestorInfo(NamedTuple):
    """Investor-specific information."""

    invested: int
    reward: int
    has_claimed: bool


class SmartFundingErrors:
    """Common error messages"""

    ALREADY_INITIALIZED = "Already initialized"
    NOT_CONFIGURED = "Funding not configured"
    ZERO_AMOUNT = "Amount should be more than 0"
    NO_REWARD = "No reward"
    ALREADY_CLAIMED = "Already claim"
    NO_INVESTMENT = "No invest"
    UNAUTHORIZED = "Unauthorized action"
    INVALID_GOAL = "Goal should be more than 0"
    INVALID_DURATION = "Duration cannot be negative"
    INVALID_TOKEN = "Reward token cannot be HTR"
    INVALID_ACTIONS = "Invalid actions"


class SmartFundingError(NCFail):
    """Base error for SmartFunding operations."""
    pass


class AlreadyInitialized(SmartFundingError):
    pass


class NotConfigured(SmartFundingError):
    pass


class ZeroAmount(SmartFundingError):
    pass


class NoReward(SmartFundingError):
    pass


class AlreadyClaimed(SmartFundingError):
    pass


class NoInvestment(SmartFundingError):
    pass


class Unauthorized(SmartFundingError):
    pass


class InvalidGoal(SmartFundingError):
    pass


class InvalidDuration(SmartFundingError):
    pass


class InvalidToken(SmartFundingError):
    pass


class InvalidActions(SmartFundingError):
    pass


@export
class SmartFunding(Blueprint):
    """Crowdfunding blueprint paying a fixed reward token pool pro rata.

    Investors deposit HTR and earn `invested * reward_budget // goal` reward
    tokens. Each investor either claims the reward or refunds the HTR, never
    both. The goal only prices the reward, it is not a cap.

    State Variables:
        token_uid: Reward token paid out on claim
        owner: Creator, the only caller allowed to configure
        goal: HTR amount that buys the whole reward budget
        reward_budget: Reward tokens held when the funding was configured
        duration_days: Funding window length, informational only
        configured_at: Block timestamp of the configuration
        pool: Sum of all current investments
        investments: HTR invested per address
        claimed: Claim status per address
    """

    # Configuration
    token_uid: TokenUid
    owner: CallerId
    goal: Amount
    reward_budget: Amount
    duration_days: int
    configured_at: Timestamp
    is_configured: bool

    # Funding state
    pool: Amount
    investors_count: int
    total_claimed: Amount

    # Token balances
    htr_balance: Amount
    token_balance: Amount

    # Investor tracking
    investments: dict[Address, Amount]
    claimed: dict[Address, bool]

    @public(allow_deposit=True)
    def initialize(self, ctx: Context, token_uid: TokenUid) -> None:
        """Create the funding contract for a reward token.

        The reward tokens may be deposited here, in `configure` or through
        `fund_rewards`, but only tokens held at configuration time make up
        the reward budget.
        """
        if token_uid == HTR_UID:
            raise InvalidToken(SmartFundingErrors.INVALID_TOKEN)

        self.token_uid = token_uid
        self.owner = ctx.caller_id

        self.goal = Amount(0)
        self.reward_budget = Amount(0)
        self.duration_days = 0
        self.configured_at = Timestamp(0)
        self.is_configured = False

        self.pool = Amount(0)
        self.investors_count = 0
        self.total_claimed = Amount(0)

        self.htr_balance = Amount(0)
        self.token_balance = Amount(0)

        self.investments = {}
        self.claimed = {}

        self._receive_reward_tokens(ctx)

    @public(allow_deposit=True)
    def configure(self, ctx: Context, goal: Amount, duration_days: int) -> None:
        """Set the funding goal and duration, once."""
        if self.is_configured:
            raise AlreadyInitialized(SmartFundingErrors.ALREADY_INITIALIZED)
        if ctx.caller_id != self.owner:
            raise Unauthorized(SmartFundingErrors.UNAUTHORIZED)
        if goal <= 0:
            raise InvalidGoal(SmartFundingErrors.INVALID_GOAL)
        if duration_days < 0:
            raise InvalidDuration(SmartFundingErrors.INVALID_DURATION)

        self._receive_reward_tokens(ctx)

        self.goal = goal
        self.duration_days = duration_days
        self.configured_at = Timestamp(ctx.block.timestamp)
        self.reward_budget = Amount(self.syscall.get_current_balance(self.token_uid))
        self.is_configured = True

        self._emit_event("Configure", Address(ctx.caller_id), self.reward_budget)

    @public(allow_deposit=True)
    def fund_rewards(self, ctx: Context) -> None:
        """Deposit reward tokens into the contract."""
        amount = self._receive_reward_tokens(ctx)
        if amount == 0:
            raise ZeroAmount(SmartFundingErrors.ZERO_AMOUNT)

        self._emit_event("FundRewards", Address(ctx.caller_id), amount)

    @public(allow_deposit=True)
    def invest(self, ctx: Context) -> None:
        """Invest the deposited HTR."""
        if not self.is_configured:
            raise NotConfigured(SmartFundingErrors.NOT_CONFIGURED)
        if not ctx.actions:
            raise ZeroAmount(SmartFundingErrors.ZERO_AMOUNT)

        action = self._get_single_deposit_action(ctx, TokenUid(HTR_UID))
        if action.amount <= 0:
            raise ZeroAmount(SmartFundingErrors.ZERO_AMOUNT)

        investor = Address(ctx.caller_id)
        # A claimed investor could never refund new HTR
        if self.claimed.get(investor, False):
            raise AlreadyClaimed(SmartFundingErrors.ALREADY_CLAIMED)

        amount = Amount(action.amount)
        if investor not in self.investments:
            self.investors_count += 1

        self.investments[investor] = Amount(
            self.investments.get(investor, Amount(0)) + amount
        )
        self.pool = Amount(self.pool + amount)
        self.htr_balance = Amount(self.htr_balance + amount)

        self._emit_event("Invest", investor, amount)

    @public(allow_withdrawal=True)
    def claim(self, ctx: Context) -> None:
        """Withdraw the caller's reward tokens."""
        investor = Address(ctx.caller_id)
        if self.claimed.get(investor, False):
            raise AlreadyClaimed(SmartFundingErrors.ALREADY_CLAIMED)

        reward = self._calculate_reward(self.investments.get(investor, Amount(0)))
        if reward == 0:
            raise NoReward(SmartFundingErrors.NO_REWARD)

        action = self._get_single_withdrawal_action(ctx, self.token_uid)
        if action.amount != reward:
            raise InvalidActions(f"Invalid withdrawal amount. Expected {reward}")

        # Investment stays recorded, the reward is consumed
        self.claimed[investor] = True
        self.total_claimed = Amount(self.total_claimed + reward)
        self.token_balance = Amount(self.token_balance - reward)

        self._emit_event("ClaimReward", investor, reward)

    @public(allow_withdrawal=True)
    def refund(self, ctx: Context) -> None:
        """Withdraw the caller's whole investment."""
        investor = Address(ctx.caller_id)
        invested = self.investments.get(investor, Amount(0))
        if invested == 0:
            raise NoInvestment(SmartFundingErrors.NO_INVESTMENT)
        if self.claimed.get(investor, False):
            raise AlreadyClaimed(SmartFundingErrors.ALREADY_CLAIMED)

        action = self._get_single_withdrawal_action(ctx, TokenUid(HTR_UID))
        if action.amount != invested:
            raise InvalidActions(f"Invalid withdrawal amount. Expected {invested}")

        self.investments[investor] = Amount(0)
        self.pool = Amount(self.pool - invested)
        self.htr_balance = Amount(self.htr_balance - invested)

        self._emit_event("Refund", investor, invested)

    def _receive_reward_tokens(self, ctx: Context) -> Amount:
        """Account an optional reward token deposit."""
        if not ctx.actions:
            return Amount(0)

        action = self._get_single_deposit_action(ctx, self.token_uid)

        self.token_balance = Amount(self.token_balance + action.amount)
        return Amount(action.amount)

    def _get_single_deposit_action(
        self, ctx: Context, token_uid: TokenUid
    ) -> NCDepositAction:
        """Get a single deposit action for the specified token."""
        if len(ctx.actions) != 1 or token_uid not in ctx.actions:
            raise InvalidActions(SmartFundingErrors.INVALID_ACTIONS)
        action = ctx.get_single_action(token_uid)
        if not isinstance(action, NCDepositAction):
            raise InvalidActions("Expected deposit action")
        return action

    def _get_single_withdrawal_action(
        self, ctx: Context, token_uid: TokenUid
    ) -> NCWithdrawalAction:
        """Get a single withdrawal action for the specified token."""
        if len(ctx.actions) != 1 or token_uid not in ctx.actions:
            raise InvalidActions(SmartFundingErrors.INVALID_ACTIONS)
        action = ctx.get_single_action(token_uid)
        if not isinstance(action, NCWithdrawalAction):
            raise InvalidActions("Expected withdrawal action")
        return action

    def _calculate_reward(self, invested: Amount) -> Amount:
        """Reward tokens due for an HTR amount, rounded down."""
        if self.goal == 0:
            return Amount(0)
        return Amount(invested * self.reward_budget // self.goal)

    def _emit_event(self, name: str, address: Address, amount: Amount) -> None:
        self.syscall.emit_event(f"{name}:{address.hex()}:{amount}".encode())

    def _reward_of(self, address: Address) -> Amount:
        if self.claimed.get(address, False):
            return Amount(0)
        return self._calculate_reward(self.investments.get(address, Amount(0)))

    @view
    def reward_of(self, address: Address) -> Amount:
        """Reward tokens the address can still claim."""
        return self._reward_of(address)

    @view
    def invest_of(self, address: Address) -> Amount:
        return self.investments.get(address, Amount(0))

    @view
    def claimed_of(self, address: Address) -> bool:
        return self.claimed.get(address, False)

    @view
    def get_pool(self) -> Amount:
        return self.pool

    @view
    def get_goal(self) -> Amount:
        return self.goal

    @view
    def get_token_uid(self) -> str:
        return self.token_uid.hex()

    @view
    def get_funding_info(self) -> FundingInfo:
        """Get general funding information."""
        return FundingInfo(
            token_uid=self.token_uid.hex(),
            goal=self.goal,
            reward_budget=self.reward_budget,
            duration_days=self.duration_days,
            configured_at=self.configured_at,
            deadline=self.configured_at + self.duration_days * SECONDS_PER_DAY,
            pool=self.pool,
            investors=self.investors_count,
            total_claimed=self.total_claimed,
            token_balance=self.token_balance,
            is_configured=self.is_configured,
        )

    @view
    def get_investor_info(self, address: Address) -> InvestorInfo:
        """Get investor-specific information."""
        return InvestorInfo(
            invested=self.investments.get(address, Amount(0)),
            reward=self._reward_of(address),
            has_claimed=self.claimed.get(address, False),
        )
