"""The governance deployment plan.

Token → timelock treasury → governor, then hand token ownership to the
treasury, mint the supply, fund members, hand the treasury to itself, give
the governor its roles and finally drop the deployer's admin role.
"""

from __future__ import annotations

from govdeploy.config.plan import PlanConfig
from govdeploy.ledger.base import ADMIN_ROLE, EXECUTOR_ROLE, PROPOSER_ROLE, StepKind
from govdeploy.provisioning.plan import Plan, Ref, Step

DEPLOY_TOKEN = "deploy_token"
DEPLOY_TIMELOCK = "deploy_timelock"
DEPLOY_GOVERNOR = "deploy_governor"
TRANSFER_TOKEN_OWNERSHIP = "transfer_token_ownership"
MINT_SUPPLY = "mint_supply"
TRANSFER_TREASURY_OWNERSHIP = "transfer_treasury_ownership"
GRANT_PROPOSER = "grant_proposer"
GRANT_EXECUTOR = "grant_executor"
RENOUNCE_ADMIN = "renounce_admin"


def member_step_id(index: int) -> str:
    return f"fund_member_{index}"


def build_governance_plan(config: PlanConfig, deployer: str) -> Plan:
    """Declare the fixed deployment sequence for ``config``."""
    token = Ref(DEPLOY_TOKEN)
    timelock = Ref(DEPLOY_TIMELOCK)
    governor = Ref(DEPLOY_GOVERNOR)

    steps = [
        Step(
            id=DEPLOY_TOKEN,
            kind=StepKind.CREATE,
            params={"contract": config.contracts.token, "args": [deployer]},
            description="Deploy governance token",
        ),
        Step(
            id=DEPLOY_TIMELOCK,
            kind=StepKind.CREATE,
            params={
                "contract": config.contracts.timelock,
                # minDelay, proposers, executors, admin, treasury owner, token
                "args": [config.min_delay, [], [], deployer, deployer, token],
            },
            description="Deploy timelock treasury",
        ),
        Step(
            id=DEPLOY_GOVERNOR,
            kind=StepKind.CREATE,
            params={
                "contract": config.contracts.governor,
                "args": [
                    token,
                    timelock,
                    config.voting_delay,
                    config.voting_period,
                    config.proposal_threshold,
                    config.quorum_percent,
                ],
            },
            description="Deploy governor",
        ),
        Step(
            id=TRANSFER_TOKEN_OWNERSHIP,
            kind=StepKind.TRANSFER_OWNERSHIP,
            params={"target": token, "new_owner": timelock},
            description="Token is owned by the timelock treasury",
        ),
        Step(
            id=MINT_SUPPLY,
            kind=StepKind.MINT,
            params={
                "treasury": timelock,
                "token": token,
                "amount": config.to_base_units(config.total_supply),
            },
            after=(TRANSFER_TOKEN_OWNERSHIP,),
            description=f"Mint {config.total_supply} tokens into the treasury",
        ),
    ]

    member_amount = config.to_base_units(config.per_member_amount)
    funding_ids = []
    for index, member in enumerate(config.members):
        step_id = member_step_id(index)
        funding_ids.append(step_id)
        steps.append(
            Step(
                id=step_id,
                kind=StepKind.TRANSFER,
                params={"treasury": timelock, "token": token, "to": member, "amount": member_amount},
                after=(MINT_SUPPLY,),
                description=f"Transfer {config.per_member_amount} tokens to {member}",
            )
        )

    steps.extend(
        [
            Step(
                id=TRANSFER_TREASURY_OWNERSHIP,
                kind=StepKind.TRANSFER_OWNERSHIP,
                params={"target": timelock, "new_owner": timelock},
                # The deployer needs treasury ownership to mint and fund members.
                after=(MINT_SUPPLY, *funding_ids),
                description="Treasury is owned by the timelock itself",
            ),
            Step(
                id=GRANT_PROPOSER,
                kind=StepKind.GRANT_ROLE,
                params={"target": timelock, "role": PROPOSER_ROLE, "account": governor},
                description="Governor may propose",
            ),
            Step(
                id=GRANT_EXECUTOR,
                kind=StepKind.GRANT_ROLE,
                params={"target": timelock, "role": EXECUTOR_ROLE, "account": governor},
                description="Governor may execute",
            ),
        ]
    )

    renounce_after = tuple(step.id for step in steps)
    steps.append(
        Step(
            id=RENOUNCE_ADMIN,
            kind=StepKind.RENOUNCE_ROLE,
            params={"target": timelock, "role": ADMIN_ROLE, "account": deployer},
            after=renounce_after,
            description="Deployer renounces timelock admin",
        )
    )
    return Plan(steps)
