"""Built-in command set — triggers, target management, auto-pinging and the shop.

BuiltinCommands owns the collaborators the actions need and produces the
fixed manifest that is loaded into the CommandRegistry at start-up. Every
action receives an Invocation; nothing per-call is stored on the commands.
"""

from __future__ import annotations

import logging
import math
import random
import re
from typing import TYPE_CHECKING, Awaitable, Callable

from .commands import NO_KEYWORD, Command, ExecutableCommand, Invocation, TriggerableCommand
from .confirmation import FlowLocks, confirm
from .exceptions import FlowBusyError, ResponseTimeoutError
from .models import AccessLevel
from .utils import extract_user_id, mention, normalize_text

if TYPE_CHECKING:
    from .chatbot_client import ChatBotClient
    from .config import NikkuConfig
    from .database import BotDatabase
    from .repeater import Repeater
    from .shop import Shop
    from .state import MessageState

# Leading "Mr Fortnite" address, spaced or not
_ADDRESS_RE = re.compile(r"^\s*mr\s*fortnite\s*", re.IGNORECASE)


class BuiltinCommands:
    """Factory and implementation of the default command manifest."""

    def __init__(
        self,
        config: NikkuConfig,
        database: BotDatabase,
        repeater: Repeater,
        shop: Shop,
        chatbot: ChatBotClient | None = None,
        locks: FlowLocks | None = None,
        logger: logging.Logger | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._db = database
        self._repeater = repeater
        self._shop = shop
        self._chatbot = chatbot
        self._locks = locks or FlowLocks()
        self._logger = logger or logging.getLogger("nikku.commands")
        self._rng = rng or random.Random()

        self._currency = config.currency.name
        self._prefix = config.commands.prefixes[0] if config.commands.prefixes else ""
        self._executables: list[ExecutableCommand] = []

    # ══════════════════════════════════════════════════════════
    #  Manifest
    # ══════════════════════════════════════════════════════════

    def build(self) -> list[Command]:
        """Return every built-in command in registration order."""
        triggers: list[Command] = [
            TriggerableCommand(
                key="random_text", action=self._act_random_text, trigger=self._is_random_text,
            ),
            TriggerableCommand(
                key="fortnite", action=self._act_fortnite, trigger=self._mentions_fortnite,
            ),
            TriggerableCommand(
                key="pubg", action=self._act_pubg, trigger=self._mentions_pubg,
            ),
        ]
        if self._chatbot is not None and self._config.chatbot.base_url:
            triggers.append(TriggerableCommand(
                key="random_response", action=self._act_random_response,
                trigger=self._is_random_response,
            ))

        p = self._prefix
        self._executables = [
            ExecutableCommand(
                key="ping", action=self._cmd_ping,
                usage=f"{p} ping", description="Replies with pong.",
            ),
            ExecutableCommand(
                key=NO_KEYWORD, action=self._cmd_ping_targets,
                usage=p, description="Pings every target.",
            ),
            ExecutableCommand(
                key="help", action=self._cmd_help,
                usage=f"{p} help", description="Shows this list.",
            ),
            ExecutableCommand(
                key="register", action=self._cmd_register,
                usage=f"{p} register", description="Creates your account.",
            ),
            ExecutableCommand(
                key="balance", action=self._cmd_balance,
                access_level=AccessLevel.REGISTERED,
                usage=f"{p} balance", description=f"Shows your {self._currency} and items.",
            ),
            ExecutableCommand(
                key="auto", action=self._cmd_auto, arg_count=2,
                access_level=AccessLevel.REGISTERED,
                usage=f"{p} auto <amount> <delay seconds>",
                description="Pings the targets repeatedly, for a price.",
            ),
            ExecutableCommand(
                key="stop", action=self._cmd_stop,
                usage=f"{p} stop", description="Stops auto pinging in this channel.",
            ),
            ExecutableCommand(
                key="targetlist", action=self._cmd_targetlist,
                usage=f"{p} targetlist", description="Lists the current targets.",
            ),
            ExecutableCommand(
                key="removeself", action=self._cmd_removeself,
                usage=f"{p} removeself", description="Removes you from the targets.",
            ),
            ExecutableCommand(
                key="target", action=self._cmd_target,
                usage=f"{p} target @user", description="Asks a user to become a target.",
            ),
            ExecutableCommand(
                key="shop", action=self._cmd_shop,
                usage=f"{p} shop", description="Shows the item shop.",
            ),
            ExecutableCommand(
                key="buy", action=self._cmd_buy,
                access_level=AccessLevel.REGISTERED,
                usage=f"{p} buy <item>", description="Buys an item from the shop.",
            ),
        ]
        return triggers + list(self._executables)

    # ══════════════════════════════════════════════════════════
    #  Triggers
    # ══════════════════════════════════════════════════════════

    def _roll(self, chance_percent: float) -> bool:
        return self._rng.random() * 100 < chance_percent

    def _is_random_text(self, state: MessageState) -> bool:
        return self._roll(self._config.triggers.random_text_chance_percent)

    def _mentions_fortnite(self, state: MessageState) -> bool:
        if not self._config.triggers.keyword_triggers_enabled:
            return False
        content = state.content
        return "fortnite" in normalize_text(content) and not content.startswith("!")

    def _mentions_pubg(self, state: MessageState) -> bool:
        if not self._config.triggers.keyword_triggers_enabled:
            return False
        return "pubg" in normalize_text(state.content)

    def _is_random_response(self, state: MessageState) -> bool:
        return bool(state.content.strip()) and self._roll(self._config.chatbot.chance_percent)

    async def _act_random_text(self, inv: Invocation) -> None:
        await inv.state.send(self._config.triggers.random_text_message)

    async def _act_fortnite(self, inv: Invocation) -> None:
        await self._ping_targets(inv.state)

    async def _act_pubg(self, inv: Invocation) -> None:
        await inv.state.send("OwO someone said pubg? (this is a sample)")

    async def _act_random_response(self, inv: Invocation) -> None:
        text = _ADDRESS_RE.sub("", inv.state.content, count=1)
        reply = await self._chatbot.ask(text, inv.state.channel_id)
        if reply:
            await inv.state.send(reply)

    async def _ping_targets(self, state: MessageState) -> None:
        """Mention every target and credit each one the ping reward."""
        targets = await self._db.get_targets()
        reward = self._config.currency.target_ping_reward
        for target in targets:
            if reward:
                await self._db.increment_currency(target, self._currency, reward)
        mentions = "".join(f"{mention(t)} " for t in targets)
        await state.send(f"OwO someone said fortnite? {mentions} fortnite?")

    # ══════════════════════════════════════════════════════════
    #  Basic commands
    # ══════════════════════════════════════════════════════════

    async def _cmd_ping(self, inv: Invocation) -> None:
        await inv.state.send("pong")

    async def _cmd_ping_targets(self, inv: Invocation) -> None:
        await self._ping_targets(inv.state)

    async def _cmd_help(self, inv: Invocation) -> None:
        lines = ["```Commands"]
        for cmd in self._executables:
            lines.append(f"{cmd.usage} - {cmd.description}")
        lines.append("```")
        await inv.state.send("\n".join(lines))

    async def _cmd_register(self, inv: Invocation) -> None:
        if inv.user is not None:
            await inv.state.reply("You are already registered.")
            return
        user_id = inv.state.author_id
        created = await self._db.create_user(user_id)
        if not created:
            await inv.state.reply("You are already registered.")
            return
        starting = self._config.currency.starting_balance
        if starting:
            await self._db.increment_currency(user_id, self._currency, starting)
        self._logger.info("Registered user %s", user_id)
        await inv.state.reply(
            f"Registered! You start with **{starting} {self._currency}**."
        )

    async def _cmd_balance(self, inv: Invocation) -> None:
        user_id = inv.state.author_id
        balance = await self._db.get_balance(user_id, self._currency)
        inventory = await self._db.get_inventory(user_id)
        text = f"You have **{balance} {self._currency}**."
        if inventory:
            items = ", ".join(f"{name} x{qty}" for name, qty in inventory.items())
            text += f"\nItems: {items}"
        await inv.state.reply(text)

    # ══════════════════════════════════════════════════════════
    #  Targets
    # ══════════════════════════════════════════════════════════

    async def _cmd_targetlist(self, inv: Invocation) -> None:
        targets = await self._db.get_targets()
        lines = [f"```Current Targets: ({len(targets)})"]
        for target in targets:
            name = inv.state.display_name(target)
            if name is not None:
                lines.append(f"- {name}")
        await inv.state.send("\n".join(lines) + "\n```")

    async def _cmd_removeself(self, inv: Invocation) -> None:
        if await self._db.remove_target(inv.state.author_id):
            await inv.state.send("Removed successfully.")
        else:
            await inv.state.send("Failed to remove.")

    async def _cmd_target(self, inv: Invocation) -> None:
        state = inv.state
        if len(inv.args) != 1:
            await inv.command.display_usage(state)
            return
        target_id = extract_user_id(inv.args[0])
        if target_id is None or not state.user_exists(target_id):
            await state.send("Target must be a user.")
            return
        if target_id in await self._db.get_targets():
            await state.send("User is already a Target")
            return

        async def flow() -> None:
            try:
                accepted = await confirm(
                    state,
                    target_id,
                    f"{mention(target_id)}, Would you like to be added as a target? \n"
                    "`yes` or `no`.",
                    timeout=self._config.commands.confirmation_timeout_seconds,
                    max_messages=self._config.commands.target_confirmation_max_messages,
                )
            except ResponseTimeoutError:
                await state.send("User did not respond in time.")
                return
            if not accepted:
                await state.send("Okey.")
                return
            await state.send("Okey, adding you as a target.")
            if await self._db.add_target(target_id):
                self._logger.info("User %s added as a target by %s", target_id, state.author_id)
                await state.send("Added successfully.")
            else:
                await state.send("Failed to add as target.")

        await self._run_flow(inv, flow, responder_id=target_id)

    # ══════════════════════════════════════════════════════════
    #  Auto pinging
    # ══════════════════════════════════════════════════════════

    async def _cmd_auto(self, inv: Invocation) -> None:
        state = inv.state
        auto_cfg = self._config.auto_ping
        try:
            amount = int(inv.args[0])
            delay = float(inv.args[1])
        except ValueError:
            await inv.command.display_usage(state)
            return
        if amount < 1:
            await inv.command.display_usage(state)
            return
        if delay < auto_cfg.min_delay_seconds:
            await state.send(f"Delay must be over {auto_cfg.min_delay_seconds:g}s")
            return
        if amount > auto_cfg.max_amount:
            await state.send(f"Amount must be at most {auto_cfg.max_amount}.")
            return
        if self._repeater.is_running(state.channel_id):
            await state.send(
                "Auto pinging is already running here. Use **stop** first."
            )
            return

        price = math.ceil(amount ** auto_cfg.price_exponent)
        user_id = state.author_id
        balance = inv.user.balance(self._currency) if inv.user else 0
        if balance < price:
            await state.reply(self._insufficient_funds(price, balance))
            return

        async def flow() -> None:
            try:
                accepted = await confirm(
                    state,
                    user_id,
                    f"You requested auto pinging, this will cost **{price} {self._currency}s**.\n"
                    "Start? `yes` or `no`.",
                    timeout=self._config.commands.confirmation_timeout_seconds,
                )
            except ResponseTimeoutError:
                await state.reply("Operation cancelled.")
                return
            if not accepted:
                await state.send("Okey.")
                return

            remaining = await self._db.debit_currency(user_id, self._currency, price)
            if remaining is None:
                current = await self._db.get_balance(user_id, self._currency)
                await state.reply(self._insufficient_funds(price, current))
                return

            async def tick(_: int) -> None:
                await self._ping_targets(state)

            if not self._repeater.start(state.channel_id, amount, delay, tick):
                await self._db.increment_currency(user_id, self._currency, price)
                await state.send("Auto pinging is already running here. You were refunded.")
                return
            # First ping goes out right away; the loop handles the rest
            await self._ping_targets(state)
            self._logger.info(
                "User %s bought %d auto pings for %d %s", user_id, amount, price, self._currency,
            )
            await state.send(f"Auto pinging started: {amount} pings every {delay:g}s.")

        await self._run_flow(inv, flow)

    async def _cmd_stop(self, inv: Invocation) -> None:
        if await self._repeater.stop(inv.state.channel_id):
            await inv.state.send("Auto pinging stopped.")
        else:
            await inv.state.send("Nothing to stop.")

    # ══════════════════════════════════════════════════════════
    #  Shop
    # ══════════════════════════════════════════════════════════

    async def _cmd_shop(self, inv: Invocation) -> None:
        await inv.state.send(self._shop.render())

    async def _cmd_buy(self, inv: Invocation) -> None:
        state = inv.state
        if not inv.args:
            await inv.command.display_usage(state)
            return
        name = " ".join(inv.args)
        item = self._shop.get(name)
        if item is None:
            await state.reply(f"There is no **{name}** in the shop.")
            return

        currency = self._shop.currency_of(item)
        price = item.get_price()
        user_id = state.author_id
        result = await self._db.purchase(user_id, currency, price, item.name)
        if result is None:
            balance = await self._db.get_balance(user_id, currency)
            await state.reply(self._insufficient_funds(price, balance, currency))
            return
        remaining, owned = result
        self._logger.info("User %s bought %s for %d %s", user_id, item.name, price, currency)
        await state.reply(
            f"You bought **{item.name}** for **{price} {currency}**. "
            f"You now own {owned}. Balance: **{remaining}**."
        )

    # ══════════════════════════════════════════════════════════
    #  Helpers
    # ══════════════════════════════════════════════════════════

    async def _run_flow(
        self,
        inv: Invocation,
        flow: Callable[[], Awaitable[None]],
        responder_id: str | None = None,
    ) -> None:
        """Run an interactive flow holding the (command, invoker) lock.

        When someone other than the invoker has to answer, their dialog is
        locked as well so two prompts never wait on the same reply.
        """
        key = inv.command.invocation_key
        try:
            async with self._locks.claim(key, inv.state.author_id):
                if responder_id is None:
                    await flow()
                    return
                try:
                    async with self._locks.claim(f"{key}:responder", responder_id):
                        await flow()
                except FlowBusyError:
                    await inv.state.reply(
                        f"{mention(responder_id)} already has a pending request. Try again later."
                    )
                    raise
        except FlowBusyError as e:
            if e.context.get("user") == inv.state.author_id and e.context.get("command") == key:
                await inv.state.reply("You already have a pending request. Answer it first.")
            raise

    def _insufficient_funds(self, price: int, balance: int, currency: str | None = None) -> str:
        currency = currency or self._currency
        return (
            f"You do not have enough **{currency}** for this operation.\n"
            f"Operation Cost: **{price}**.\n"
            f"You have: **{balance}**."
        )
