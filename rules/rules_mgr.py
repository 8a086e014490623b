import yaml
import logging
from typing import Dict, List, Optional, Type
from pydantic import ValidationError
from models.base_models import AslRuleDefinition
from plugins.base_plugin import BasePlugin


class RuleManager:
    """
    Collects declarative (ASL) rules: the condition trees carried by plugin
    descriptors plus stand-alone rules from the configured YAML rule file.
    """

    def __init__(self, config_manager, plugins: Optional[Dict[str, Type[BasePlugin]]] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.rule_file_path = config_manager.get_asl_rules_file()
        self.providers = config_manager.get_providers()
        self._rules: Dict[str, AslRuleDefinition] = {}
        self._load_rules(plugins or {})

    def _load_rules(self, plugins: Dict[str, Type[BasePlugin]]):
        for plugin_id, plugin_cls in plugins.items():
            descriptor = plugin_cls.metadata()
            if descriptor.asl is None:
                continue
            self._rules[plugin_id] = AslRuleDefinition(
                id=plugin_id,
                title=descriptor.title,
                category=descriptor.category,
                description=descriptor.description,
                provider=plugin_cls.provider,
                compliance=descriptor.compliance,
                asl=descriptor.asl,
            )
            self.logger.info(f"Linked declarative conditions of plugin {plugin_id}")

        if not self.rule_file_path:
            return

        self.logger.info(f"Loading declarative rules from: {self.rule_file_path}")
        with open(self.rule_file_path, 'r') as f:
            raw_rules = yaml.safe_load(f) or {}

        try:
            definitions = [AslRuleDefinition(**r) for r in raw_rules.get('rules', [])]
        except ValidationError as e:
            raise ValueError(f"Declarative rule validation error: {e}")

        for definition in definitions:
            if definition.provider and definition.provider not in self.providers:
                self.logger.debug(f"Skipping rule {definition.id} for disabled provider {definition.provider}")
                continue
            if definition.id in self._rules:
                self.logger.warning(f"Rule {definition.id} from {self.rule_file_path} overrides an existing rule")
            self._rules[definition.id] = definition

    def get_all_rules(self) -> Dict[str, AslRuleDefinition]:
        return self._rules

    def get_rule(self, rule_id: str) -> Optional[AslRuleDefinition]:
        result = self._rules.get(rule_id)

        if result:
            self.logger.info(f"Found rule for ID: {rule_id}")
        else:
            self.logger.warning(f"Rule not found for ID: {rule_id}")

        return result

    def get_all_rule_ids(self) -> List[str]:
        return list(self._rules.keys())
