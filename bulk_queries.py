# bulk_queries.py
"""
Bulk operation documents for products and orders.

Each builder returns a complete bulkOperationRunQuery mutation. Incremental
variants add an ``updated_at`` search filter so only objects changed since
the last build are exported.
"""

from datetime import datetime
from typing import Optional


def bulk_operation_query(query: str) -> str:
    """Wrap a connection query in a bulkOperationRunQuery mutation."""
    return f'''
    mutation INITIATE_BULK_OPERATION {{
      bulkOperationRunQuery(
        query: """
        {query}
        """
      ) {{
        bulkOperation {{
          id
          status
        }}
        userErrors {{
          field
          message
        }}
      }}
    }}
    '''


def updated_since_filter(since: Optional[datetime]) -> str:
    if since is None:
        return ''
    return f'(query: "updated_at:>\'{since.isoformat()}\'")'


def products_query(since: Optional[datetime] = None) -> str:
    query = f'''
        {{
          products{updated_since_filter(since)} {{
            edges {{
              node {{
                id
                title
                handle
                description
                descriptionHtml
                productType
                vendor
                tags
                status
                createdAt
                updatedAt
                featuredImage {{
                  id
                  altText
                  originalSrc: url
                }}
                images {{
                  edges {{
                    node {{
                      id
                      altText
                      originalSrc: url
                      width
                      height
                    }}
                  }}
                }}
                variants {{
                  edges {{
                    node {{
                      id
                      title
                      sku
                      price
                      compareAtPrice
                      availableForSale
                      inventoryQuantity
                      selectedOptions {{
                        name
                        value
                      }}
                      metafields {{
                        edges {{
                          node {{
                            id
                            key
                            namespace
                            value
                            type
                            description
                          }}
                        }}
                      }}
                      presentmentPrices {{
                        edges {{
                          node {{
                            __typename
                            price {{
                              amount
                              currencyCode
                            }}
                            compareAtPrice {{
                              amount
                              currencyCode
                            }}
                          }}
                        }}
                      }}
                    }}
                  }}
                }}
              }}
            }}
          }}
        }}
    '''
    return bulk_operation_query(query)


def orders_query(since: Optional[datetime] = None) -> str:
    query = f'''
        {{
          orders{updated_since_filter(since)} {{
            edges {{
              node {{
                id
                name
                email
                createdAt
                updatedAt
                displayFinancialStatus
                displayFulfillmentStatus
                totalPriceSet {{
                  shopMoney {{
                    amount
                    currencyCode
                  }}
                }}
                lineItems {{
                  edges {{
                    node {{
                      id
                      name
                      sku
                      quantity
                      product {{
                        id
                      }}
                    }}
                  }}
                }}
              }}
            }}
          }}
        }}
    '''
    return bulk_operation_query(query)


CURRENT_OPERATION_QUERY = """
query {
  currentBulkOperation {
    id
    status
    errorCode
    createdAt
    completedAt
    objectCount
    fileSize
    url
    partialDataUrl
  }
}
"""

OPERATION_BY_ID_QUERY = """
query OPERATION_BY_ID($id: ID!) {
  node(id: $id) {
    ... on BulkOperation {
      id
      status
      errorCode
      createdAt
      completedAt
      objectCount
      fileSize
      url
      partialDataUrl
    }
  }
}
"""

CANCEL_OPERATION_MUTATION = """
mutation CANCEL_OPERATION($id: ID!) {
  bulkOperationCancel(id: $id) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""
