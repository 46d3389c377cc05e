"""Wires every wizard into one FlowEngine."""
from fleetdesk.flows import client, driver, invoice, invoice_profile, onboarding, route, vehicle
from fleetdesk.flows.engine import FlowEngine

FLOW_MODULES = (onboarding, client, driver, vehicle, route, invoice_profile, invoice)


def build_flow_engine() -> FlowEngine:
    flows = {}
    for module in FLOW_MODULES:
        definition = module.build()
        flows[definition.flow_id] = definition
    return FlowEngine(flows)


FLOW_IDS = tuple(module.build().flow_id for module in FLOW_MODULES)
