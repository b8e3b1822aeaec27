# tracesdk/client/graphql.py
"""
GraphQL documents used against the trace service.
Each document's operation name is what identifies it in request logs.
"""

HEAD_LINK_FRAGMENT = """
fragment HeadLinkFragment on Trace {
  head {
    raw
    data
  }
}
"""

TRACE_STATE_FRAGMENT = """
fragment TraceStateFragment on Trace {
  updatedAt
  state {
    data
  }
  head {
    raw
    data
  }
  tags
}
"""

PAGINATION_ON_TRACES_FRAGMENT = """
fragment PaginationInfoOnTracesConnectionFragment on TracesConnection {
  totalCount
  info: pageInfo {
    hasNext: hasNextPage
    hasPrevious: hasPreviousPage
    startCursor
    endCursor
  }
}
"""

PAGINATION_ON_LINKS_FRAGMENT = """
fragment PaginationInfoOnLinksConnectionFragment on LinksConnection {
  totalCount
  info: pageInfo {
    hasNext: hasNextPage
    hasPrevious: hasPreviousPage
    startCursor
    endCursor
  }
}
"""

CONFIG_QUERY = """
query configQuery($workflowId: BigInt!) {
  account: me {
    accountId: rowId
    signingKey {
      privateKey {
        passwordProtected
        decrypted
      }
    }
    user {
      memberOf {
        nodes {
          accountId: rowId
        }
      }
    }
    bot {
      teams {
        nodes {
          accountId: rowId
        }
      }
    }
  }
  workflow: workflowByRowId(rowId: $workflowId) {
    config {
      id: rowId
    }
    groups {
      nodes {
        groupId: rowId
        label
        members {
          nodes {
            accountId
          }
        }
      }
    }
  }
}
"""

CREATE_LINK_MUTATION = """
mutation createLinkMutation($link: JSON!, $data: JSON) {
  createLink(input: { link: $link, data: $data }) {
    trace {
      ...TraceStateFragment
    }
  }
}
""" + TRACE_STATE_FRAGMENT

GET_HEAD_LINK_QUERY = """
query getHeadLinkQuery($traceId: UUID!) {
  trace: traceById(id: $traceId) {
    ...HeadLinkFragment
  }
}
""" + HEAD_LINK_FRAGMENT

GET_TRACE_STATE_QUERY = """
query getTraceStateQuery($traceId: UUID!) {
  trace: traceById(id: $traceId) {
    ...TraceStateFragment
  }
}
""" + TRACE_STATE_FRAGMENT

GET_TRACE_DETAILS_QUERY = """
query getTraceDetailsQuery(
  $traceId: UUID!
  $first: Int
  $last: Int
  $before: Cursor
  $after: Cursor
) {
  trace: traceById(id: $traceId) {
    links(first: $first, last: $last, before: $before, after: $after) {
      nodes {
        raw
        data
      }
      ...PaginationInfoOnLinksConnectionFragment
    }
  }
}
""" + PAGINATION_ON_LINKS_FRAGMENT

GET_TRACES_IN_STAGE_QUERY = """
query getTracesInStageQuery(
  $groupId: BigInt!
  $stageType: StageType!
  $actionKey: String
  $first: Int
  $last: Int
  $before: Cursor
  $after: Cursor
) {
  group: groupByRowId(rowId: $groupId) {
    stages(condition: { type: $stageType, actionKey: $actionKey }) {
      nodes {
        traces(first: $first, last: $last, before: $before, after: $after) {
          nodes {
            ...TraceStateFragment
          }
          ...PaginationInfoOnTracesConnectionFragment
        }
      }
    }
  }
}
""" + TRACE_STATE_FRAGMENT + PAGINATION_ON_TRACES_FRAGMENT

ADD_TAGS_TO_TRACE_MUTATION = """
mutation addTagsToTraceMutation($traceId: UUID!, $tags: [String]!) {
  addTagsToTrace(input: { traceRowId: $traceId, tags: $tags }) {
    trace {
      ...TraceStateFragment
    }
  }
}
""" + TRACE_STATE_FRAGMENT

SEARCH_TRACES_QUERY = """
query searchTracesQuery(
  $workflowId: BigInt!
  $filter: TraceFilter!
  $first: Int
  $last: Int
  $before: Cursor
  $after: Cursor
) {
  workflow: workflowByRowId(rowId: $workflowId) {
    traces(filter: $filter, first: $first, last: $last, before: $before, after: $after) {
      nodes {
        ...TraceStateFragment
      }
      ...PaginationInfoOnTracesConnectionFragment
    }
  }
}
""" + TRACE_STATE_FRAGMENT + PAGINATION_ON_TRACES_FRAGMENT


def operation_name(document: str) -> str:
    """'query configQuery(...' -> 'query configQuery'"""
    return document.strip().split("(")[0].strip()
