from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Peça AI",
    "budget_request": "Solicitacao de orcamento",
    "budget_response": "Resposta de orcamento",
    "supplier": "Autopeca",
    "order": "Pedido",
    "workshop": "Oficina",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "orcamento": [
        {
            "key": "pending",
            "label": "Pendente",
            "description": "Nenhuma autopeca respondeu ainda.",
        },
        {
            "key": "answered",
            "label": "Respondido",
            "description": "Parte das autopecas selecionadas ja respondeu.",
        },
        {
            "key": "completed",
            "label": "Concluido",
            "description": "Todas as autopecas selecionadas responderam.",
        },
    ],
    "pedido": [
        {
            "key": "placed",
            "label": "Realizado",
            "description": "Pedido registrado para a autopeca escolhida.",
        },
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "budget_request_created": "Orcamento solicitado com sucesso!",
        "budget_request_deleted": "Solicitacao de orcamento removida.",
        "budget_response_recorded": "Orcamento enviado com sucesso! Obrigado.",
        "order_created": "Pedido realizado com sucesso!",
        "password_changed": "Senha atualizada com sucesso.",
        "settings_saved": "Configuracoes salvas com sucesso.",
        "supplier_created": "Autopeca adicionada com sucesso!",
        "supplier_deleted": "Autopeca removida com sucesso!",
        "supplier_updated": "Autopeca atualizada com sucesso!",
    },
    "error": {
        "assistant_no_answer": "Nao consegui obter uma resposta da IA.",
        "assistant_unavailable": "Desculpe, houve um erro ao processar sua solicitacao.",
        "assistant_message_too_long": "Pergunta muito longa: use no maximo {max_chars} caracteres.",
        "auth_invalid_credentials": "Credenciais invalidas. Tente novamente.",
        "auth_missing_credentials": "Informe usuario e senha.",
        "auth_required": "Autenticacao necessaria.",
        "budget_request_not_found": "Solicitacao de orcamento nao encontrada: {short_id}.",
        "budget_request_id_not_found": "Solicitacao de orcamento nao encontrada.",
        "budget_response_not_found": "Resposta de orcamento nao encontrada.",
        "csrf_invalid": "Sessao expirada. Recarregue a pagina e tente novamente.",
        "email_already_registered": "Email ja cadastrado. Use outro email ou faca login.",
        "email_invalid": "E-mail invalido.",
        "field_required": "Campo obrigatorio: {field}.",
        "field_invalid": "Campo invalido: {field}.",
        "logo_invalid_type": "Formato de logo nao suportado. Use PNG, JPEG ou WEBP.",
        "logo_required": "Selecione um arquivo de logo.",
        "logo_too_large": "Arquivo de logo excede o tamanho permitido.",
        "missing_required_field": "Missing required field: {field}",
        "order_items_required": "Selecione pelo menos uma peca para realizar o pedido.",
        "order_part_not_quoted": "Peca nao consta no orcamento da autopeca: {part}.",
        "parts_required": "Adicione pelo menos uma peca.",
        "password_invalid": "Senha atual incorreta.",
        "password_too_short": "A nova senha deve ter pelo menos 6 caracteres.",
        "permission_denied": "Voce nao possui permissao para executar esta acao.",
        "persistence_failed": "Falha ao gravar dados: {details}",
        "quantity_invalid": "Quantidade deve ser no minimo 1.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "selected_shops_required": "Selecione pelo menos uma autopeca para enviar o orcamento.",
        "status_invalid": "Status informado e invalido.",
        "supplier_not_found": "Fornecedor nao encontrado: {shop_id}.",
        "suppliers_not_found": "Autopecas nao encontradas: {shop_ids}.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "username_invalid": "Nome de usuario deve ter de 3 a 20 caracteres (letras, numeros e sublinhado).",
        "username_taken": "Nome de usuario ja esta em uso.",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None, **params: object) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if not message:
        return default if default is not None else key
    if not params:
        return message
    try:
        return message.format(**params)
    except (KeyError, IndexError):
        return message


def error_message(key: str, default: str | None = None, **params: object) -> str:
    return get_message("error", key, default, **params)


def success_message(key: str, default: str | None = None, **params: object) -> str:
    return get_message("success", key, default, **params)


def frontend_bundle() -> Dict[str, object]:
    return {
        "terms": FRIENDLY_TERMS,
        "status_groups": STATUS_GROUPS,
        "messages": MESSAGES,
    }
